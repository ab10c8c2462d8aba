"""Participant ORM models.

Classes:
    Participant: Person record with demographic, professional, and program-affiliation fields.
    ParticipantProfile: Optional narrative sub-record (achievements, vision, challenges, motivation).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field, SQLModel

from app.utils.clock import utc_now


class Participant(SQLModel, table=True):
    __tablename__ = "participants"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    phone: Optional[str] = Field(default=None, index=True)
    name: Optional[str] = None
    consent: bool = Field(default=False)
    role: Optional[str] = Field(default=None, index=True)
    employer: Optional[str] = Field(default=None, index=True)
    program_employer: Optional[str] = None
    sector: Optional[str] = Field(default=None, index=True)
    organization_type: Optional[str] = None
    seniority: Optional[str] = None
    career_years: Optional[int] = None
    state: Optional[str] = None
    country: Optional[str] = None
    gender: Optional[str] = None
    race: Optional[str] = None
    program_brand: Optional[str] = None
    previous_singue_programs: Optional[str] = None
    previous_pactua_programs: Optional[str] = None
    council_member: bool = Field(default=False)
    financial_market: bool = Field(default=False)
    black_sister_in_law: bool = Field(default=False)
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, index=True)

    @property
    def display_employer(self) -> Optional[str]:
        return self.program_employer or self.employer


class ParticipantProfile(SQLModel, table=True):
    __tablename__ = "participant_profiles"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    participant_id: UUID = Field(foreign_key="participants.id", index=True)
    achievements: Optional[str] = Field(default=None, sa_column=Column(Text))
    future_vision: Optional[str] = Field(default=None, sa_column=Column(Text))
    challenges_overcome: Optional[str] = Field(default=None, sa_column=Column(Text))
    current_challenges: Optional[str] = Field(default=None, sa_column=Column(Text))
    motivation: Optional[str] = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=utc_now)
