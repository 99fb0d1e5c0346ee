from __future__ import annotations

import pytest

from app.services.prompt_store import render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt("discovery.casinos_prompt", state="West Virginia")
    assert "West Virginia" in prompt
    assert "${state}" not in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_raises_for_missing_value():
    with pytest.raises(KeyError, match="state"):
        render_prompt("discovery.casinos_prompt")
