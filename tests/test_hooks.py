# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_aegis

from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest

from wont_let_you_see.config import ConfigStore
from wont_let_you_see.hooks import INFRA_COMMAND_PATTERN, HookAdapter
from wont_let_you_see.main import Masker
from wont_let_you_see.patterns import PatternRegistry
from wont_let_you_see.vault import MappingStore

SESSION = "sess-hooks"


@pytest.fixture
def masker(store: MappingStore, registry: PatternRegistry, config: ConfigStore) -> Masker:
    return Masker(store=store, registry=registry, config=config)


@pytest.fixture
def hooks(masker: Masker) -> HookAdapter:
    return HookAdapter(masker)


@pytest.mark.parametrize(
    "command, expected",
    [
        ("aws ec2 describe-vpcs", True),
        ("terraform plan", True),
        ("kubectl get pods", True),
        ("helm list", True),
        ("cd infra && aws s3 ls", True),
        ("AWS ec2 describe-vpcs", False),
        ("awsume prod", False),
        ("ls -la", False),
        ("aws", False),
    ],
)
def test_infra_command_detection(command: str, expected: bool) -> None:
    assert bool(INFRA_COMMAND_PATTERN.search(command)) is expected


def test_infra_command_round_trip(hooks: HookAdapter, masker: Masker) -> None:
    token = masker.mask(SESSION, "vpc-0123456789abcdef0")
    args: Dict[str, Any] = {"command": f"aws ec2 describe-subnets --filters Name=vpc-id,Values={token}"}

    hooks.tool_execute_before("bash", SESSION, "call-1", args)

    assert args["command"] == "aws ec2 describe-subnets --filters Name=vpc-id,Values=vpc-0123456789abcdef0"

    output: Dict[str, Any] = {
        "output": '{"SubnetId": "subnet-0123456789abcdef0", "VpcId": "vpc-0123456789abcdef0"}',
        "metadata": {"output": "subnet-0123456789abcdef0"},
    }
    hooks.tool_execute_after("bash", SESSION, "call-1", output)

    assert output["output"] == f'{{"SubnetId": "#(subnet-1)", "VpcId": "{token}"}}'
    assert output["metadata"]["output"] == "#(subnet-1)"


def test_non_infra_command_is_untouched(hooks: HookAdapter) -> None:
    args: Dict[str, Any] = {"command": "cat notes.txt"}
    hooks.tool_execute_before("bash", SESSION, "call-2", args)

    output: Dict[str, Any] = {"output": "vpc-0123456789abcdef0"}
    hooks.tool_execute_after("bash", SESSION, "call-2", output)

    assert args["command"] == "cat notes.txt"
    assert output["output"] == "vpc-0123456789abcdef0"


def test_other_tools_are_ignored() -> None:
    masker = MagicMock(spec=Masker)
    hooks = HookAdapter(masker)

    args: Dict[str, Any] = {"command": "aws s3 ls"}
    hooks.tool_execute_before("read", SESSION, "call-3", args)
    hooks.tool_execute_after("read", SESSION, "call-3", {"output": "x"})

    masker.unmask.assert_not_called()
    masker.mask.assert_not_called()


def test_call_is_forgotten_after_output() -> None:
    masker = MagicMock(spec=Masker)
    masker.unmask.side_effect = lambda session_id, text: text
    masker.mask.side_effect = lambda session_id, text: "masked"
    hooks = HookAdapter(masker)

    hooks.tool_execute_before("bash", SESSION, "call-4", {"command": "kubectl get nodes"})
    first: Dict[str, Any] = {"output": "raw"}
    hooks.tool_execute_after("bash", SESSION, "call-4", first)
    second: Dict[str, Any] = {"output": "raw"}
    hooks.tool_execute_after("bash", SESSION, "call-4", second)

    assert first["output"] == "masked"
    assert second["output"] == "raw"


def test_metadata_without_output_is_left_alone() -> None:
    masker = MagicMock(spec=Masker)
    masker.unmask.side_effect = lambda session_id, text: text
    masker.mask.side_effect = lambda session_id, text: "masked"
    hooks = HookAdapter(masker)

    hooks.tool_execute_before("bash", SESSION, "call-5", {"command": "helm status web"})
    output: Dict[str, Any] = {"output": "raw", "metadata": {"exit": 0}}
    hooks.tool_execute_after("bash", SESSION, "call-5", output)

    assert output == {"output": "masked", "metadata": {"exit": 0}}
    assert masker.mask.call_count == 1


def test_remembered_calls_expire() -> None:
    current_time = 0.0

    def mock_timer() -> float:
        return current_time

    masker = MagicMock(spec=Masker)
    masker.unmask.side_effect = lambda session_id, text: text
    hooks = HookAdapter(masker, call_ttl=10, timer=mock_timer)

    hooks.tool_execute_before("bash", SESSION, "call-6", {"command": "terraform apply"})
    current_time = 11.0
    output: Dict[str, Any] = {"output": "raw"}
    hooks.tool_execute_after("bash", SESSION, "call-6", output)

    assert output["output"] == "raw"
    masker.mask.assert_not_called()


def test_chat_message_masks_text_parts(hooks: HookAdapter) -> None:
    parts: List[Dict[str, Any]] = [
        {"type": "text", "text": "my instance is i-0123456789abcdef0"},
        {"type": "file", "text": "i-0123456789abcdef0"},
        {"type": "text", "text": ""},
        {"type": "text"},
    ]

    hooks.chat_message(SESSION, parts)

    assert parts == [
        {"type": "text", "text": "my instance is #(ec2-instance-1)"},
        {"type": "file", "text": "i-0123456789abcdef0"},
        {"type": "text", "text": ""},
        {"type": "text"},
    ]
