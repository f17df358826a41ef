"""Recall.ai webhook payload schemas.

Validated against the unwrapped ``data`` object of the webhook body.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class RecallResource(BaseModel):
    id: str
    metadata: dict[str, Any] | None = None


class RecallTimestamp(BaseModel):
    absolute: str
    relative: float


class RecallParticipant(BaseModel):
    id: int
    name: str | None
    is_host: bool
    platform: str | None
    extra_data: dict[str, Any]
    email: str | None


class ParticipantEventData(BaseModel):
    participant: RecallParticipant
    timestamp: RecallTimestamp
    data: dict[str, Any] | None


class ChatMessage(BaseModel):
    text: str
    to: str


class ParticipantChatMessageData(BaseModel):
    participant: RecallParticipant
    timestamp: RecallTimestamp
    data: ChatMessage


class ParticipantEvent(BaseModel):
    data: ParticipantEventData
    realtime_endpoint: RecallResource
    participant_events: RecallResource
    recording: RecallResource
    bot: RecallResource | None = None


class ParticipantChatMessageEvent(BaseModel):
    data: ParticipantChatMessageData
    realtime_endpoint: RecallResource
    participant_events: RecallResource
    recording: RecallResource
    bot: RecallResource | None = None


class RelativeTimestamp(BaseModel):
    relative: float


class TranscriptWord(BaseModel):
    text: str
    start_timestamp: RelativeTimestamp
    end_timestamp: RelativeTimestamp | None


class TranscriptData(BaseModel):
    words: list[TranscriptWord]
    participant: RecallParticipant


class TranscriptEvent(BaseModel):
    data: TranscriptData
    realtime_endpoint: RecallResource
    transcript: RecallResource
    recording: RecallResource
    bot: RecallResource | None = None


class BotStatus(BaseModel):
    code: str
    sub_code: str | None
    updated_at: str


class BotEvent(BaseModel):
    data: BotStatus
    bot: RecallResource


_PARTICIPANT_EVENTS = (
    "join",
    "leave",
    "update",
    "speech_on",
    "speech_off",
    "webcam_on",
    "webcam_off",
    "screenshare_on",
    "screenshare_off",
)

_BOT_EVENTS = (
    "joining_call",
    "in_waiting_room",
    "in_call_not_recording",
    "recording_permission_allowed",
    "recording_permission_denied",
    "in_call_recording",
    "call_ended",
    "done",
    "fatal",
    "breakout_room_entered",
    "breakout_room_left",
    "breakout_room_opened",
    "breakout_room_closed",
)

RECALL_SCHEMAS: dict[str, type[BaseModel]] = {
    **{f"participant_events.{name}": ParticipantEvent for name in _PARTICIPANT_EVENTS},
    "participant_events.chat_message": ParticipantChatMessageEvent,
    "transcript.data": TranscriptEvent,
    "transcript.partial_data": TranscriptEvent,
    **{f"bot.{name}": BotEvent for name in _BOT_EVENTS},
}
