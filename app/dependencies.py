# app/dependencies.py
"""FastAPI dependencies that hand out the services built at startup."""
from fastapi import Request

from app.config import AppConfig
from billing.service import BillingReconciler
from generation.service import GenerationService
from ledger.service import Ledger


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_ledger(request: Request) -> Ledger:
    return request.app.state.ledger


def get_reconciler(request: Request) -> BillingReconciler:
    return request.app.state.reconciler


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service
