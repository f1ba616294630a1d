"""Database models."""

from app.models.appointments import appointments
from app.models.balance import balance_movements
from app.models.base import metadata
from app.models.catalog import consultations, services
from app.models.clients import client_tags, clients, organization_tags
from app.models.consents import consent_forms, consent_tokens, patient_consents
from app.models.expenses import expenses
from app.models.group_activities import group_activities, group_activity_participants
from app.models.invoices import invoice_lines, invoices
from app.models.organizations import organizations
from app.models.schedules import vacation_requests, work_schedule_breaks, work_schedules
from app.models.users import users
from app.models.whatsapp import channel_organizations, waba

__all__ = [
    "appointments",
    "balance_movements",
    "channel_organizations",
    "client_tags",
    "clients",
    "consent_forms",
    "consent_tokens",
    "consultations",
    "expenses",
    "group_activities",
    "group_activity_participants",
    "invoice_lines",
    "invoices",
    "metadata",
    "organization_tags",
    "organizations",
    "patient_consents",
    "services",
    "users",
    "vacation_requests",
    "waba",
    "work_schedule_breaks",
    "work_schedules",
]
