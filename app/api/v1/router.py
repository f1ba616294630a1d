"""Version 1 API: one router per clinic area."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    appointments,
    assistant,
    auth,
    billing,
    catalog,
    clients,
    consents,
    expenses,
    group_activities,
    health,
    invoices,
    organizations,
    public,
    schedules,
    users,
    whatsapp,
)

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(users.router)
api_router.include_router(organizations.router)
api_router.include_router(catalog.router)
api_router.include_router(schedules.router)
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(group_activities.router)
api_router.include_router(clients.router)
api_router.include_router(consents.router)
api_router.include_router(invoices.router)
api_router.include_router(expenses.router)
api_router.include_router(billing.router)
api_router.include_router(whatsapp.router)
api_router.include_router(assistant.router)
api_router.include_router(public.router)
