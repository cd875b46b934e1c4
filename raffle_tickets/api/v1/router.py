"""Aggregate API v1 router."""

from fastapi import APIRouter

from raffle_tickets.api.v1.endpoints import (
    print_jobs,
    sales,
    templates,
    tickets,
)

api_router = APIRouter()

api_router.include_router(print_jobs.router, prefix="/print-jobs", tags=["Print jobs"])
api_router.include_router(templates.router, prefix="/templates", tags=["Paper templates"])
api_router.include_router(sales.router, prefix="/sales", tags=["Sales"])
api_router.include_router(tickets.router, prefix="/tickets", tags=["Tickets"])
