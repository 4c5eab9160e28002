"""
Job Lifecycle Models
One row per cleaning engagement, from offer through client review
"""

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


def generate_job_id():
    """Generate an opaque job identifier"""
    return str(uuid.uuid4())


class Job(Base):
    """Cleaning job aggregate - state is the single source of truth for allowed actions"""

    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=generate_job_id)

    # Lifecycle
    state = Column(String(40), nullable=False, index=True, default="OFFERED")
    sub_state = Column(String(40), nullable=False, default="NONE")
    version = Column(Integer, nullable=False, default=1)  # Bumped on every write

    # Ownership (weak references by id)
    client_id = Column(String(128), nullable=False, index=True)
    assigned_cleaner_id = Column(String(128), nullable=True, index=True)
    offered_cleaner_ids = Column(JSON, nullable=False, default=list)

    # Booking location, frozen at creation
    address = Column(Text, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    # Pricing inputs, frozen at booking time
    contracted_duration_minutes = Column(Integer, nullable=False)
    hourly_rate_credits = Column(Float, nullable=False)
    scheduled_date = Column(String(10), nullable=True)  # YYYY-MM-DD
    scheduled_time = Column(String(10), nullable=True)  # HH:MM

    # Transition timestamps (each set once)
    assigned_at = Column(DateTime, nullable=True)
    en_route_at = Column(DateTime, nullable=True)
    check_in_at = Column(DateTime, nullable=True)
    start_at = Column(DateTime, nullable=True)
    end_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    disputed_at = Column(DateTime, nullable=True)
    dispute_resolved_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    # GPS snapshots
    en_route_lat = Column(Float, nullable=True)
    en_route_lng = Column(Float, nullable=True)
    check_in_lat = Column(Float, nullable=True)
    check_in_lng = Column(Float, nullable=True)
    start_lat = Column(Float, nullable=True)
    start_lng = Column(Float, nullable=True)
    end_lat = Column(Float, nullable=True)
    end_lng = Column(Float, nullable=True)

    # Photos
    requires_before_photos = Column(Boolean, default=True)
    requires_after_photos = Column(Boolean, default=True)
    before_photos_count = Column(Integer, nullable=False, default=0)
    after_photos_count = Column(Integer, nullable=False, default=0)

    # Billing ceiling (set on start) and snapshot (set on completion)
    max_billable_minutes = Column(Integer, nullable=True)
    max_billable_credits = Column(Float, nullable=True)
    actual_minutes_worked = Column(Integer, nullable=True)
    billable_minutes = Column(Integer, nullable=True)
    final_credits_charged = Column(Float, nullable=True)

    # Extra time side channel
    extra_time_requested_minutes = Column(Integer, nullable=True)
    extra_time_reason = Column(Text, nullable=True)
    approved_extra_minutes = Column(Integer, nullable=False, default=0)
    has_pending_extra_time_request = Column(Boolean, nullable=False, default=False)

    # Reschedule side channel
    has_pending_reschedule_request = Column(Boolean, nullable=False, default=False)
    reschedule_requested_by = Column(String(128), nullable=True)
    reschedule_date = Column(String(10), nullable=True)
    reschedule_time = Column(String(10), nullable=True)

    # Review / dispute / cancellation
    client_rating = Column(Integer, nullable=True)
    tip_credits = Column(Float, nullable=True)
    cleaner_notes = Column(Text, nullable=True)
    dispute_opened_by = Column(String(20), nullable=True)  # client | cleaner
    dispute_reason = Column(Text, nullable=True)
    dispute_resolution = Column(String(20), nullable=True)  # approve | refund
    dispute_resolution_notes = Column(Text, nullable=True)
    cancelled_by = Column(String(128), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
