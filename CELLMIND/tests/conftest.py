"""Shared fakes for CellMind tests."""
from __future__ import annotations

from typing import List, Optional

import pandas as pd
import pytest

from CELLMIND.analysis.chain import GenerationRequest
from CELLMIND.interfaces.errors import CompletionError, HttpCompletionError
from CELLMIND.tools.data_sources import FrameDataSource


class FakeCompletionClient:
    """Answers with canned text and records every request it sees."""

    def __init__(self, responses: Optional[List[str]] = None, fail_on_call: Optional[int] = None,
                 error: Optional[CompletionError] = None) -> None:
        self.responses = list(responses or [])
        self.fail_on_call = fail_on_call
        self.error = error or HttpCompletionError(500, '{"error": "overloaded"}')
        self.requests: List[GenerationRequest] = []

    def complete(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        call_number = len(self.requests)
        if self.fail_on_call == call_number:
            raise self.error
        if self.responses:
            return self.responses[call_number - 1]
        return f"response {call_number}"


@pytest.fixture
def frames_source() -> FrameDataSource:
    return FrameDataSource(
        {
            "Sheet1": pd.DataFrame([["x", "1"], ["y", "2"]]),
            "Sales": pd.DataFrame([["region", "total"], ["north", 10], ["south", 20]]),
        },
        names={"Totals": "Sales!B1:B3"},
        include_header=False,
    )


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def client_factory():
    return FakeCompletionClient
