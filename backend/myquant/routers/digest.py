# backend/myquant/routers/digest.py
"""Manual trigger, preview and status of the weekly digest"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import HTMLResponse

from myquant.api.deps import get_assembler, get_current_user
from myquant.db.schemas import User
from myquant.tasks.scheduler import get_scheduler_status
from myquant.tasks.weekly_digest import DigestAssembler, DigestFailed
from myquant.logger import get_logger

log = get_logger(__name__)
router = APIRouter(prefix="/digest", tags=["Weekly Digest"])


@router.post("/send")
async def send_my_digest(
    user: User = Depends(get_current_user),
    assembler: DigestAssembler = Depends(get_assembler),
):
    """Build and email the caller's digest right now"""
    try:
        outcome = await assembler.run(user)
    except DigestFailed as e:
        log.error(f"Manual digest failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to send newsletter. Please try again.",
        )

    if outcome.status == "skipped":
        return {"success": False, "message": "Add holdings or research stocks to receive a digest."}
    return {
        "success": True,
        "message": f"Weekly digest sent to {user.email}",
        "message_id": outcome.delivery.message_id if outcome.delivery else None,
        "degraded_tickers": outcome.degraded_tickers,
    }


@router.get("/preview", response_class=HTMLResponse)
async def preview_my_digest(
    user: User = Depends(get_current_user),
    assembler: DigestAssembler = Depends(get_assembler),
):
    """Render the caller's digest without sending it"""
    try:
        outcome = await assembler.run(user, send=False)
    except DigestFailed as e:
        log.error(f"Digest preview failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to build digest preview.")

    if outcome.digest is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No holdings or research stocks to preview.")
    return HTMLResponse(assembler.dispatcher.render(outcome.digest))


@router.get("/scheduler")
async def scheduler_status(user: User = Depends(get_current_user)):
    return get_scheduler_status()
