"""Goal entity models persisted in Azure Table storage.

Column names follow the existing table schema (PascalCase), exposed to Python
as snake_case fields through aliases. Each model converts to and from the raw
entity dictionaries exchanged with the entity store.
"""

from datetime import date, datetime, timezone
from enum import Enum, IntEnum
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# UTC end dates are stored as strings so reminder queries can use equality.
UTC_DATE_FORMAT = "%m-%d-%Y"

TEAM_GOAL_ID_SEPARATOR = ","


class ReminderFrequency(IntEnum):
    """How often non-expiry reminders fire."""
    WEEKLY = 0
    BIWEEKLY = 1
    MONTHLY = 2
    QUARTERLY = 3


class PersonalGoalStatus(IntEnum):
    """Progress of a personal goal."""
    NOT_STARTED = 0
    IN_PROGRESS = 1
    COMPLETED = 2


class ReminderKind(str, Enum):
    """Reason a goal owner is being notified, in descending precedence."""
    EXPIRED = "expired"
    NEAR_EXPIRY = "near_expiry"
    FREQUENCY = "frequency"

    @property
    def precedence(self) -> int:
        return list(ReminderKind).index(self)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_utc_date(value: date) -> str:
    return value.strftime(UTC_DATE_FORMAT)


def parse_utc_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return datetime.strptime(value.strip(), UTC_DATE_FORMAT).date()


def split_team_goal_ids(value: Optional[str]) -> List[str]:
    """Split a possibly comma-joined team goal id field into clean ids."""
    if not value:
        return []
    return [part.strip() for part in value.split(TEAM_GOAL_ID_SEPARATOR) if part.strip()]


class TableEntityModel(BaseModel):
    """Base for models stored as table entities."""

    model_config = ConfigDict(populate_by_name=True)

    partition_field: ClassVar[str]
    row_field: ClassVar[str]

    @property
    def partition_key(self) -> str:
        return getattr(self, self.partition_field)

    @property
    def row_key(self) -> str:
        return getattr(self, self.row_field)

    def to_entity(self) -> Dict[str, Any]:
        """Convert to a table entity with PartitionKey/RowKey set.

        Null columns are omitted; entities are always written in replace mode,
        so omitting a column clears it.
        """
        entity = self.model_dump(
            by_alias=True,
            mode="json",
            exclude_none=True,
            exclude={self.partition_field, self.row_field},
        )
        entity["PartitionKey"] = self.partition_key
        entity["RowKey"] = self.row_key
        return entity

    @classmethod
    def from_entity(cls, entity: Dict[str, Any]):
        data = {
            key: value for key, value in entity.items()
            if key not in ("PartitionKey", "RowKey")
        }
        data[cls.partition_field] = entity["PartitionKey"]
        data[cls.row_field] = entity["RowKey"]
        return cls.model_validate(data)


class AuditedEntityModel(TableEntityModel):
    created_on: Optional[str] = Field(default=None, alias="CreatedOn")
    created_by: Optional[str] = Field(default=None, alias="CreatedBy")
    last_modified_on: Optional[str] = Field(default=None, alias="LastModifiedOn")
    last_modified_by: Optional[str] = Field(default=None, alias="LastModifiedBy")
    adaptive_card_activity_id: Optional[str] = Field(
        default=None, alias="AdaptiveCardActivityId",
        description="Activity id of the card to update in place"
    )

    def touch(self) -> None:
        """Refresh the modified timestamp."""
        self.last_modified_on = utc_now_iso()


class PersonalGoalDetail(AuditedEntityModel):
    """A user's personal goal within a goal cycle."""

    partition_field: ClassVar[str] = "user_aad_object_id"
    row_field: ClassVar[str] = "personal_goal_id"

    user_aad_object_id: str = Field(..., description="Owner AAD object id (partition key)")
    personal_goal_id: str = Field(..., description="Goal id (row key)")
    goal_name: Optional[str] = Field(default=None, alias="GoalName")
    status: PersonalGoalStatus = Field(default=PersonalGoalStatus.NOT_STARTED, alias="Status")
    start_date: Optional[str] = Field(default=None, alias="StartDate")
    end_date: Optional[str] = Field(default=None, alias="EndDate")
    end_date_utc: Optional[str] = Field(default=None, alias="EndDateUTC", description="MM-dd-yyyy")
    reminder_frequency: ReminderFrequency = Field(default=ReminderFrequency.WEEKLY, alias="ReminderFrequency")
    goal_cycle_id: Optional[str] = Field(default=None, alias="GoalCycleId")
    is_active: bool = Field(default=True, alias="IsActive")
    is_aligned: bool = Field(default=False, alias="IsAligned")
    is_deleted: bool = Field(default=False, alias="IsDeleted")
    is_reminder_active: bool = Field(default=True, alias="IsReminderActive")
    team_id: Optional[str] = Field(default=None, alias="TeamId")
    team_goal_id: Optional[str] = Field(default=None, alias="TeamGoalId")
    conversation_id: Optional[str] = Field(default=None, alias="ConversationId")
    service_url: Optional[str] = Field(default=None, alias="ServiceUrl")

    @property
    def aligned_team_goal_ids(self) -> List[str]:
        return split_team_goal_ids(self.team_goal_id)

    def is_aligned_to(self, team_id: str, team_goal_id: Optional[str] = None) -> bool:
        """Whether this goal is aligned to the team, and to the team goal when given."""
        if not self.is_aligned or self.team_id != team_id:
            return False
        if team_goal_id is None:
            return True
        return team_goal_id in self.aligned_team_goal_ids

    def unalign(self) -> None:
        self.is_aligned = False
        self.team_id = None
        self.team_goal_id = None
        self.touch()


class PersonalGoalNoteDetail(AuditedEntityModel):
    """A note attached to a personal goal."""

    partition_field: ClassVar[str] = "user_aad_object_id"
    row_field: ClassVar[str] = "personal_goal_note_id"

    user_aad_object_id: str
    personal_goal_note_id: str
    personal_goal_id: str = Field(..., alias="PersonalGoalId")
    personal_goal_note_description: Optional[str] = Field(default=None, alias="PersonalGoalNoteDescription")
    source_name: Optional[str] = Field(default=None, alias="SourceName")
    conversation_id: Optional[str] = Field(default=None, alias="ConversationId")
    is_active: bool = Field(default=True, alias="IsActive")


class TeamGoalDetail(AuditedEntityModel):
    """A goal shared by a team."""

    partition_field: ClassVar[str] = "team_id"
    row_field: ClassVar[str] = "team_goal_id"

    team_id: str
    team_goal_id: str
    team_goal_name: Optional[str] = Field(default=None, alias="TeamGoalName")
    team_goal_start_date: Optional[str] = Field(default=None, alias="TeamGoalStartDate")
    team_goal_end_date: Optional[str] = Field(default=None, alias="TeamGoalEndDate")
    team_goal_end_date_utc: Optional[str] = Field(default=None, alias="TeamGoalEndDateUTC", description="MM-dd-yyyy")
    reminder_frequency: ReminderFrequency = Field(default=ReminderFrequency.WEEKLY, alias="ReminderFrequency")
    goal_cycle_id: Optional[str] = Field(default=None, alias="GoalCycleId")
    is_active: bool = Field(default=True, alias="IsActive")
    is_deleted: bool = Field(default=False, alias="IsDeleted")
    is_reminder_active: bool = Field(default=True, alias="IsReminderActive")
    channel_conversation_id: Optional[str] = Field(default=None, alias="ChannelConversationId")
    service_url: Optional[str] = Field(default=None, alias="ServiceUrl")


class TeamDetail(TableEntityModel):
    """Bot installation in a team."""

    partition_field: ClassVar[str] = "team_id"
    row_field: ClassVar[str] = "team_id"

    team_id: str
    bot_installed_on: str = Field(default_factory=utc_now_iso, alias="BotInstalledOn")
    service_url: Optional[str] = Field(default=None, alias="ServiceUrl")


class TeamGoalStatus(BaseModel):
    """Roll-up of aligned personal goal progress for one team goal."""
    team_goal_id: str
    team_goal_name: Optional[str] = None
    not_started_goal_count: int = 0
    in_progress_goal_count: int = 0
    completed_goal_count: int = 0


class TeamMember(BaseModel):
    """A member of a team roster."""
    id: str = Field(..., description="Channel account id used to open a 1:1 conversation")
    aad_object_id: Optional[str] = None
    name: Optional[str] = None


class ConversationRef(BaseModel):
    """Where a proactive message is delivered."""
    conversation_id: str
    service_url: str
    conversation_type: str = "personal"
    tenant_id: Optional[str] = None

    @field_validator("service_url")
    @classmethod
    def validate_service_url(cls, v: str) -> str:
        if not v:
            raise ValueError("service_url is required")
        return v

    @property
    def is_group(self) -> bool:
        return self.conversation_type == "channel"
