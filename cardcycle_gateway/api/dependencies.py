"""Dependency injection for FastAPI endpoints"""

from fastapi import Request
from cardcycle_gateway.services.sync import AccountSyncService
from cardcycle_gateway.services.webhooks import WebhookDeduplicator


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_sync_service(request: Request) -> AccountSyncService:
    """Provide the process-wide sync service"""
    return request.app.state.sync_service


def get_webhook_deduplicator(request: Request) -> WebhookDeduplicator:
    return request.app.state.webhook_deduplicator
