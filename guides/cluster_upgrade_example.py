"""Example recording a cluster upgrade in the proctrail audit trail."""

import asyncio

from pydantic import BaseModel

from proctrail import ExecutionInfo, WorkflowContext, track_event, track_process
from proctrail.activities import build_activity_registry
from proctrail.config import load_config
from proctrail.engine import LocalWorkflowRuntime
from proctrail.service import get_audit_service


class NodePoolInput(BaseModel):
    cluster_id: str
    pool: str
    version: str


async def upgrade_node_pool(pool: NodePoolInput) -> str:
    await asyncio.sleep(0.1)
    return f"{pool.cluster_id}/{pool.pool}@{pool.version}"


async def upgrade_cluster(
    ctx: WorkflowContext, org_id: int, cluster_id: str, version: str
) -> list:
    upgraded = []
    async with track_process(ctx, org_id, cluster_id):
        for pool in ("system", "general"):
            async with track_event(ctx, f"upgrade-{pool}-pool"):
                upgraded.append(
                    await ctx.execute_activity(
                        "upgrade-node-pool",
                        NodePoolInput(cluster_id=cluster_id, pool=pool, version=version),
                    )
                )
                ctx.logger.info(f"Upgraded {pool} pool to {version}")
    return upgraded


async def main():
    """Run one upgrade and print what the audit trail recorded."""
    config = load_config()
    service = get_audit_service(config=config)

    registry = build_activity_registry(service)
    registry.register("upgrade-node-pool", upgrade_node_pool, NodePoolInput)
    runtime = LocalWorkflowRuntime(
        registry,
        retry_policy=config.activity.retry,
        start_to_close_timeout=config.activity.start_to_close_timeout,
    )

    info = ExecutionInfo(execution_id="cluster-upgrade-42", workflow_type="cluster-upgrade")
    run = await runtime.run(upgrade_cluster, info, 7, "cluster-42", "1.29")
    print(f"Upgraded: {run.result}")

    process = await service.get_process(info.execution_id)
    print(f"Process {process.id}: {process.status.value}")
    for event in process.events:
        print(f"- {event.timestamp} {event.type}: {event.status.value}")


if __name__ == "__main__":
    asyncio.run(main())
