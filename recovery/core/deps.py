from fastapi import Request

from recovery.services.reconciliation import ReconciliationService


def get_reconciliation(request: Request) -> ReconciliationService:
    """The service built by the app lifespan; one per process."""
    return request.app.state.reconciliation
