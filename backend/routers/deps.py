from fastapi import Depends
from fastapi.requests import HTTPConnection

from database import get_db
from services import DonorDirectory, FulfillmentLedger, LiveQueryHub, RequestCatalog, StatsService


def get_live_hub(conn: HTTPConnection) -> LiveQueryHub:
    return conn.app.state.live_hub


def get_ledger(db=Depends(get_db), hub: LiveQueryHub = Depends(get_live_hub)) -> FulfillmentLedger:
    return FulfillmentLedger(db, hub=hub)


def get_directory(db=Depends(get_db), hub: LiveQueryHub = Depends(get_live_hub)) -> DonorDirectory:
    return DonorDirectory(db, hub)


def get_catalog(db=Depends(get_db), hub: LiveQueryHub = Depends(get_live_hub)) -> RequestCatalog:
    return RequestCatalog(db, hub)


def get_stats(db=Depends(get_db)) -> StatsService:
    return StatsService(db)
