"""
Proactive Messaging Service for Teams Bot Framework

Sends goal reminder cards without an incoming request, opens 1:1
conversations with team members and reads team rosters. This is the
conversation notifier and team roster provider used by the dispatcher
and the goal cycle closer.
"""

import logging
import os
import uuid
from typing import Any, Dict, List, Optional

# Bot Framework imports
from botbuilder.core import (
    BotFrameworkAdapter,
    BotFrameworkAdapterSettings,
    CardFactory,
    MessageFactory,
    TurnContext
)
from botbuilder.core.teams import TeamsInfo
from botbuilder.schema import (
    ChannelAccount,
    ConversationAccount,
    ConversationParameters,
    ConversationReference
)
from botbuilder.schema.teams import TeamsChannelData, TenantInfo
from botframework.connector.auth import MicrosoftAppCredentials

from goal_tracker.models.goals import ConversationRef, TeamMember
from goal_tracker.services.retry_policy import is_transient_delivery_error

logger = logging.getLogger(__name__)

TEAMS_CHANNEL_ID = "msteams"
ROSTER_PAGE_SIZE = 100


class ProactiveMessagingService:
    """
    Service for sending proactive messages to Teams conversations.

    Features:
    - Send adaptive cards to personal and channel conversations
    - Create 1:1 conversations with team members
    - Enumerate team members page by page
    - Classify delivery errors as transient or permanent
    """

    def __init__(
        self,
        app_id: str,
        app_password: str,
        tenant_id: Optional[str] = None,
        adapter: Optional[BotFrameworkAdapter] = None
    ):
        """
        Initialize the proactive messaging service.

        Args:
            app_id: Microsoft App ID for the bot
            app_password: Microsoft App Password for the bot
            tenant_id: Optional tenant ID for single-tenant apps
            adapter: Existing adapter to share with the webhook handler
        """
        self.app_id = app_id
        self.app_password = app_password
        self.tenant_id = tenant_id

        if adapter is None:
            settings = BotFrameworkAdapterSettings(
                app_id=app_id,
                app_password=app_password,
                channel_auth_tenant=tenant_id
            )
            adapter = BotFrameworkAdapter(settings)
        self.adapter = adapter

        logger.info(f"ProactiveMessagingService initialized for app_id: {app_id}")

    @property
    def bot_id(self) -> str:
        return f"28:{self.app_id}"

    def is_transient(self, error: BaseException) -> bool:
        """Whether a delivery error is worth retrying."""
        return is_transient_delivery_error(error)

    def _conversation_reference(self, conversation: ConversationRef) -> ConversationReference:
        MicrosoftAppCredentials.trust_service_url(conversation.service_url)
        return ConversationReference(
            channel_id=TEAMS_CHANNEL_ID,
            service_url=conversation.service_url,
            conversation=ConversationAccount(
                id=conversation.conversation_id,
                tenant_id=conversation.tenant_id or self.tenant_id,
                conversation_type=conversation.conversation_type,
                is_group=conversation.is_group
            ),
            bot=ChannelAccount(id=self.bot_id)
        )

    async def send_proactive(
        self,
        conversation: ConversationRef,
        card_json: Dict[str, Any],
        correlation_id: Optional[str] = None
    ) -> Optional[str]:
        """
        Send an adaptive card to a Teams conversation.

        Args:
            conversation: Target conversation
            card_json: Adaptive card JSON content
            correlation_id: Optional correlation ID for tracking

        Returns:
            Activity id of the sent message, when the channel returns one
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        logger.info(
            f"[{correlation_id}] Sending card to {conversation.conversation_type} conversation "
            f"{conversation.conversation_id} via {conversation.service_url}"
        )

        activity_id = None

        async def send_activity_callback(turn_context: TurnContext):
            nonlocal activity_id
            message = MessageFactory.attachment(CardFactory.adaptive_card(card_json))
            response = await turn_context.send_activity(message)
            activity_id = response.id if response else None

        try:
            await self.adapter.continue_conversation(
                self._conversation_reference(conversation),
                send_activity_callback,
                self.app_id
            )
        except Exception as e:
            logger.error(
                f"[{correlation_id}] Failed to send card to conversation "
                f"{conversation.conversation_id}: {e}",
                exc_info=True
            )
            raise

        logger.info(f"[{correlation_id}] Card sent successfully. Response ID: {activity_id}")
        return activity_id

    async def create_conversation(
        self,
        team_id: str,
        service_url: str,
        member: TeamMember
    ) -> ConversationRef:
        """
        Open (or reuse, the channel returns the existing one) a 1:1
        conversation between the bot and a team member.

        Args:
            team_id: Team the member was found in
            service_url: Service URL for the team's region
            member: Roster entry of the member

        Returns:
            Reference to the personal conversation
        """
        MicrosoftAppCredentials.trust_service_url(service_url)

        parameters = ConversationParameters(
            is_group=False,
            bot=ChannelAccount(id=self.bot_id),
            members=[ChannelAccount(id=member.id, aad_object_id=member.aad_object_id)],
            tenant_id=self.tenant_id,
            channel_data=TeamsChannelData(tenant=TenantInfo(id=self.tenant_id))
        )
        reference = ConversationReference(
            channel_id=TEAMS_CHANNEL_ID,
            service_url=service_url,
            conversation=ConversationAccount(id=team_id, tenant_id=self.tenant_id, is_group=True),
            bot=ChannelAccount(id=self.bot_id)
        )

        created: Optional[ConversationReference] = None

        async def capture_reference(turn_context: TurnContext):
            nonlocal created
            created = TurnContext.get_conversation_reference(turn_context.activity)

        await self.adapter.create_conversation(
            reference,
            capture_reference,
            conversation_parameters=parameters,
            channel_id=TEAMS_CHANNEL_ID,
            service_url=service_url
        )

        if created is None or created.conversation is None:
            raise RuntimeError(f"No conversation created for member {member.id} of team {team_id}")

        logger.debug(f"Opened conversation {created.conversation.id} with member {member.id}")
        return ConversationRef(
            conversation_id=created.conversation.id,
            service_url=created.service_url or service_url,
            conversation_type="personal",
            tenant_id=self.tenant_id
        )

    async def list_members(self, team_id: str, service_url: str) -> List[TeamMember]:
        """
        Read the full team roster.

        Pages are fetched until the continuation token runs out and returned
        as one list.
        """
        members: List[TeamMember] = []
        channel = ConversationRef(
            conversation_id=team_id,
            service_url=service_url,
            conversation_type="channel",
            tenant_id=self.tenant_id
        )

        async def read_roster(turn_context: TurnContext):
            continuation_token = None
            while True:
                page = await TeamsInfo.get_paged_team_members(
                    turn_context,
                    team_id,
                    continuation_token,
                    ROSTER_PAGE_SIZE
                )
                for account in page.members or []:
                    members.append(TeamMember(
                        id=account.id,
                        aad_object_id=account.aad_object_id,
                        name=account.name
                    ))
                continuation_token = page.continuation_token
                if not continuation_token:
                    break

        await self.adapter.continue_conversation(
            self._conversation_reference(channel),
            read_roster,
            self.app_id
        )

        logger.info(f"Read {len(members)} members for team {team_id}")
        return members


def create_proactive_messaging_service(
    app_id: Optional[str] = None,
    app_password: Optional[str] = None,
    tenant_id: Optional[str] = None,
    adapter: Optional[BotFrameworkAdapter] = None
) -> ProactiveMessagingService:
    """
    Factory function to create a ProactiveMessagingService instance.

    Args:
        app_id: Microsoft App ID (defaults to environment variable)
        app_password: Microsoft App Password (defaults to environment variable)
        tenant_id: Tenant ID (defaults to environment variable)
        adapter: Existing adapter to reuse

    Returns:
        Configured ProactiveMessagingService instance
    """
    app_id = app_id or os.getenv("MICROSOFT_APP_ID")
    app_password = app_password or os.getenv("MICROSOFT_APP_PASSWORD")
    tenant_id = tenant_id or os.getenv("MICROSOFT_APP_TENANT_ID")

    if not app_id or not app_password:
        raise ValueError(
            "Microsoft App ID and Password are required. "
            "Set MICROSOFT_APP_ID and MICROSOFT_APP_PASSWORD environment variables."
        )

    return ProactiveMessagingService(app_id, app_password, tenant_id, adapter)


__all__ = [
    'ProactiveMessagingService',
    'create_proactive_messaging_service'
]
