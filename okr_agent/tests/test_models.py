import json
from dataclasses import dataclass, FrozenInstanceError

import pytest
from pydantic import BaseModel

from okr_agent.domain.exceptions import BusinessError, ValidationError
from okr_agent.domain.models import ChatChoice, ChatMessage, ChatResult, Message


class ObjectiveDto(BaseModel):
    Title: str
    Progress: int = 0


@dataclass
class TeamDto:
    TeamName: str


def test_message_entity_fields_must_pair():
    with pytest.raises(ValidationError) as exc:
        Message(role="assistant", entity_type="Objective")
    assert exc.value.code == "INVALID_MESSAGE"
    assert isinstance(exc.value, BusinessError)

    with pytest.raises(ValidationError):
        Message(role="assistant", entity_id="o-1")


def test_message_is_frozen_and_copies_metadata():
    meta = {"UserId": "u1"}
    msg = Message(role="user", content="hi", metadata=meta)
    meta["UserId"] = "changed"
    assert msg.metadata["UserId"] == "u1"
    with pytest.raises(FrozenInstanceError):
        msg.content = "other"


def test_factories_set_roles():
    assert Message.from_user("a", UserId="u1").role == "user"
    assert Message.from_user("a", UserId="u1").metadata == {"UserId": "u1"}
    assert Message.from_system("b").role == "system"
    assert Message.from_assistant("c").role == "assistant"
    assert Message.from_user("a").timestamp.tzinfo is not None


def test_from_function_execution_serializes_output():
    msg = Message.from_function_execution(
        "CreateObjective",
        ObjectiveDto(Title="Grow Revenue"),
        entity_type="Objective",
        entity_id="o-1",
        operation="Create",
    )
    assert msg.role == "assistant"
    assert json.loads(msg.function_output) == {"Title": "Grow Revenue", "Progress": 0}
    assert msg.has_entity

    team = Message.from_function_execution("CreateTeam", TeamDto(TeamName="Platform"))
    assert json.loads(team.function_output) == {"TeamName": "Platform"}
    assert not team.has_entity


def test_chat_result_text():
    result = ChatResult(
        provider="fake",
        model="okr-chat",
        choices=[ChatChoice(index=0, message=ChatMessage(role="assistant", content="done"))],
    )
    assert result.text == "done"
    assert ChatResult(provider="fake", model="okr-chat", choices=[]).text == ""
