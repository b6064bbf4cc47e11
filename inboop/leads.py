"""Lead capture and status changes."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import NotFound
from .lifecycle import ChannelType, LeadStatus, validate_lead_transition
from .models import Lead, utc_now
from .schemas import LeadCreateRequest

logger = logging.getLogger(__name__)


def get_lead(db: Session, workspace_id: int, lead_id: int) -> Lead:
    lead = db.scalar(select(Lead).where(Lead.id == lead_id, Lead.workspace_id == workspace_id))
    if lead is None:
        raise NotFound("Lead", lead_id)
    return lead


def list_leads(
    db: Session,
    workspace_id: int,
    status: LeadStatus | None = None,
    channel: ChannelType | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Lead]:
    query = select(Lead).where(Lead.workspace_id == workspace_id)
    if status is not None:
        query = query.where(Lead.status == status)
    if channel is not None:
        query = query.where(Lead.channel == channel)
    query = query.order_by(Lead.created_at.desc(), Lead.id.desc()).offset(offset).limit(limit)
    return list(db.scalars(query).all())


def create_lead(db: Session, workspace_id: int, payload: LeadCreateRequest) -> Lead:
    lead = Lead(
        workspace_id=workspace_id,
        customer_handle=payload.customer_handle.strip(),
        customer_name=payload.customer_name.strip() if payload.customer_name else None,
        channel=payload.channel,
        status=LeadStatus.NEW,
        notes=payload.notes,
    )
    db.add(lead)
    db.flush()
    return lead


def update_lead_status(lead: Lead, target: LeadStatus) -> Lead:
    validate_lead_transition(lead.status, target)
    previous = lead.status
    lead.status = target
    if target is LeadStatus.CONVERTED:
        lead.converted_at = utc_now()
    else:
        lead.closed_at = utc_now()
    logger.info("Lead %s %s -> %s", lead.id, previous.value, target.value)
    return lead
