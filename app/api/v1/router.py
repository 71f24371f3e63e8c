"""API v1 router: include all route modules, GET /me."""

from fastapi import APIRouter

from app.api.v1 import approvals, posts, queue
from app.dependencies import CurrentUser, CurrentWorkspace
from app.services.plan_limits import get_capabilities, get_tier_limits

api_router = APIRouter()

api_router.include_router(posts.router)
api_router.include_router(approvals.router)
api_router.include_router(queue.router)


@api_router.get("/me")
def me(user: CurrentUser, workspace: CurrentWorkspace):
    """Return current user + workspace context, plan limits and unlocked features."""
    limits = get_tier_limits(workspace)
    capabilities = get_capabilities(workspace)
    return {
        "user": {"id": str(user.id), "email": user.email, "name": user.name},
        "workspace": {
            "id": str(workspace.id),
            "name": workspace.name,
            "plan": workspace.plan,
            "timezone": workspace.timezone,
            "limits": {
                "maxQueueSlots": limits.max_queue_slots,
                "maxQueuedPosts": limits.max_queued_posts,
                "maxAutoScheduleDays": limits.max_auto_schedule_days,
                "maxBulkPosts": limits.max_bulk_posts,
            },
            "features": {
                "approvalWorkflow": capabilities.approval_workflow,
                "campaigns": capabilities.campaigns,
            },
        },
    }
