"""
Context routes: inspect the graph context the assistant would see
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from models.user_models import AuthUser
from services.auth_utils import get_current_user
from services.context_queries import VALID_DEPTHS
from services.context_service import GraphContextBuilder
from services.dependencies import get_context_builder

router = APIRouter(prefix="/context", tags=["Context"])

DEFAULT_DEPTH = 2


@router.get("/{user_id}",
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "No context available for this user"},
    }
)
async def get_context(
    user_id: str,
    depth: str = Query(default=str(DEFAULT_DEPTH), description="Traversal depth, 1-3; anything else means 2"),
    user: AuthUser = Depends(get_current_user),
    builder: GraphContextBuilder = Depends(get_context_builder),
):
    # Another user's id is reported as missing rather than forbidden
    if user.userId != user_id:
        raise HTTPException(status_code=404, detail="Not found")

    try:
        requested = int(depth)
    except ValueError:
        requested = DEFAULT_DEPTH
    valid_depth = requested if requested in VALID_DEPTHS else DEFAULT_DEPTH

    context = await builder.get_user_context(user_id, valid_depth)
    return JSONResponse(content=context.to_wire())
