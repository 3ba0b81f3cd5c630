from __future__ import annotations

import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union

import bcrypt
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


CENT = Decimal("0.01")
TIMESTAMP_PATTERN = re.compile(r"^\d{2}:[0-5]\d:[0-5]\d$")


def to_money(value: object) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(CENT, rounding=ROUND_HALF_UP)


# request amounts carry at most cents; finer input is rejected rather than rounded
Money = Annotated[Decimal, Field(decimal_places=2)]


class Role(str, Enum):
    CREATOR = "creator"
    BRAND = "brand"
    ADMIN = "admin"


class CampaignStatus(str, Enum):
    PENDING = "pending"
    LIVE = "live"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ClipStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    FLAGGED = "flagged"


class PaymentType(str, Enum):
    DEPOSIT = "deposit"
    PAYOUT = "payout"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    BANK = "bank"


class PayoutSchedule(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class LocalCredential(BaseModel):
    kind: Literal["local"] = "local"
    password_hash: str


class FederatedCredential(BaseModel):
    kind: Literal["federated"] = "federated"
    provider: str
    external_id: str


Credential = Annotated[Union[LocalCredential, FederatedCredential], Field(discriminator="kind")]


class Wallet(BaseModel):
    available_balance: Decimal = Field(default=Decimal("0.00"), ge=0)
    pending_balance: Decimal = Field(default=Decimal("0.00"), ge=0)
    withdrawable_balance: Decimal = Field(default=Decimal("0.00"), ge=0)


class User(BaseModel):
    id: str
    name: str = Field(min_length=2)
    email: str
    role: Role
    credential: Credential
    wallet: Wallet = Field(default_factory=Wallet)
    can_create_campaign: bool = False
    is_active: bool = True
    instagram: str | None = None
    tiktok: str | None = None
    youtube: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "User":
        provider = row.get("auth_provider") or "local"
        if provider == "local":
            credential: LocalCredential | FederatedCredential = LocalCredential(
                password_hash=row["password_hash"]
            )
        else:
            credential = FederatedCredential(provider=provider, external_id=row["external_id"])
        return cls(
            id=str(row["id"]),
            name=row["name"],
            email=row["email"],
            role=row["role"],
            credential=credential,
            wallet=Wallet(
                available_balance=to_money(row.get("available_balance")),
                pending_balance=to_money(row.get("pending_balance")),
                withdrawable_balance=to_money(row.get("withdrawable_balance")),
            ),
            can_create_campaign=bool(row.get("can_create_campaign")),
            is_active=row.get("is_active", True),
            instagram=row.get("instagram"),
            tiktok=row.get("tiktok"),
            youtube=row.get("youtube"),
            created_at=row.get("created_at"),
        )

    def compare_password(self, candidate: str) -> bool:
        if not isinstance(self.credential, LocalCredential) or not candidate:
            return False
        return bcrypt.checkpw(candidate.encode("utf-8"), self.credential.password_hash.encode("utf-8"))

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def public_dict(self) -> dict[str, Any]:
        auth_provider = "local"
        if isinstance(self.credential, FederatedCredential):
            auth_provider = self.credential.provider
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "auth_provider": auth_provider,
            "can_create_campaign": self.can_create_campaign,
            "is_active": self.is_active,
            "social_accounts": {
                "instagram": self.instagram,
                "tiktok": self.tiktok,
                "youtube": self.youtube,
            },
            "wallet": {key: float(value) for key, value in self.wallet.model_dump().items()},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Campaign(BaseModel):
    id: str
    brand_id: str
    title: str
    description: str
    source_videos: list[str]
    goal_views: int
    cpm: Decimal
    deposit: Decimal
    min_views_for_payout: int
    status: CampaignStatus = CampaignStatus.PENDING
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("cpm", "deposit", mode="before")
    @classmethod
    def _money(cls, value: object) -> Decimal:
        return to_money(value)


class Clip(BaseModel):
    id: str
    campaign_id: str
    creator_id: str
    clip_link: str
    original_video_link: str
    clip_timestamps: list[str] = Field(default_factory=list)
    edit_description: str = ""
    views: int = Field(default=0, ge=0)
    earnings: Decimal = Field(default=Decimal("0.00"), ge=0)
    settled_earnings: Decimal = Field(default=Decimal("0.00"), ge=0)
    status: ClipStatus = ClipStatus.PENDING
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("earnings", "settled_earnings", mode="before")
    @classmethod
    def _money(cls, value: object) -> Decimal:
        return to_money(value)

    @field_validator("clip_timestamps", mode="before")
    @classmethod
    def _timestamps(cls, value: object) -> list[str]:
        return list(value or [])

    @field_validator("clip_timestamps")
    @classmethod
    def _timestamp_format(cls, value: list[str]) -> list[str]:
        for stamp in value:
            if not TIMESTAMP_PATTERN.match(stamp):
                raise ValueError(f"Invalid timestamp {stamp!r}, expected HH:MM:SS")
        return value


class Payment(BaseModel):
    id: str
    type: PaymentType
    campaign_id: str | None = None
    creator_id: str | None = None
    amount: Decimal = Field(gt=0)
    status: PaymentStatus = PaymentStatus.PENDING
    payment_method: PaymentMethod
    external_transaction_id: str | None = None
    metadata: dict = Field(default_factory=dict)
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("amount", mode="before")
    @classmethod
    def _money(cls, value: object) -> Decimal:
        return to_money(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, value: object) -> dict:
        return dict(value or {})

    @model_validator(mode="after")
    def _association(self) -> "Payment":
        if self.type == PaymentType.DEPOSIT:
            if not self.campaign_id:
                raise ValueError("Campaign ID is required for deposit payments")
            if self.creator_id:
                raise ValueError("Deposit payments cannot reference a creator")
        else:
            if not self.creator_id:
                raise ValueError("Creator ID is required for payout payments")
            if self.campaign_id:
                raise ValueError("Payout payments cannot reference a campaign")
        return self


class AdminSettings(BaseModel):
    min_cpm: Decimal = Field(gt=0)
    min_views_for_payout: int = Field(ge=1)
    platform_commission_percentage: Decimal = Field(ge=0, le=100)
    payout_schedule: PayoutSchedule
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("min_cpm", "platform_commission_percentage", mode="before")
    @classmethod
    def _money(cls, value: object) -> Decimal:
        return to_money(value)

    def public_dict(self) -> dict[str, Any]:
        return {
            "min_cpm": float(self.min_cpm),
            "min_views_for_payout": self.min_views_for_payout,
            "platform_commission_percentage": float(self.platform_commission_percentage),
            "payout_schedule": self.payout_schedule.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
