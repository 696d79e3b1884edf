from fastapi import APIRouter, Depends

from ..auth.security import get_current_user
from ..models.models import User
from ..schemas.dashboard import DashboardStats
from ..services.dashboard import get_dashboard_stats
from ..services.store import SqlQuoteStore
from .deps import get_store


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStats)
def dashboard_stats(store: SqlQuoteStore = Depends(get_store), me: User = Depends(get_current_user)):
    return get_dashboard_stats(store, me.id)
