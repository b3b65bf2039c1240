from __future__ import annotations

import pytest

from app.core.exceptions import MalformedInputError
from app.core.profile import default_profile, load_profile
from app.policies.secrets_policy import build_secrets_template, is_placeholder


def test_default_profile_lists_exportable_tables() -> None:
    profile = default_profile()
    assert profile.table_names[0] == "competitors"
    assert "canva_designs" in profile.table_names
    assert "LOVABLE_API_KEY" in profile.secrets
    assert profile.compatibility.max_version == "2.0.0"


def test_load_profile_from_yaml(tmp_path) -> None:
    path = tmp_path / "profile.yaml"
    path.write_text(
        "system_name: cbos\n"
        "version: 1.2.0\n"
        "tables:\n"
        "  - competitors\n"
        "  - name: campaigns\n"
        "    key_column: campaign_id\n"
        "secrets: [GOOGLE_API_KEY]\n"
        "compatibility:\n"
        "  min_version: 1.0.0\n"
        "  max_version: 1.9.0\n",
        encoding="utf-8",
    )
    profile = load_profile(path)
    assert profile.version == "1.2.0"
    assert profile.table_names == ["competitors", "campaigns"]
    assert profile.table("campaigns").key_column == "campaign_id"
    assert profile.table("competitors").key_column == "id"
    assert profile.ordered_tables({"campaigns", "competitors", "other"}) == ["competitors", "campaigns"]


@pytest.mark.parametrize(
    "content",
    [
        "::not: [valid",
        "- just\n- a list\n",
        "tables: []\ncompatibility: {min_version: 1.0.0, max_version: 2.0.0}\n",
        "tables: [competitors]\n",
    ],
)
def test_load_profile_rejects_bad_input(tmp_path, content) -> None:
    path = tmp_path / "profile.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(MalformedInputError):
        load_profile(path)


def test_missing_profile_file(tmp_path) -> None:
    with pytest.raises(MalformedInputError):
        load_profile(tmp_path / "absent.yaml")


def test_secrets_template_uses_placeholders() -> None:
    template = build_secrets_template(["GOOGLE_API_KEY"])
    assert template == {"GOOGLE_API_KEY": "YOUR_GOOGLE_API_KEY"}
    assert is_placeholder(template["GOOGLE_API_KEY"])
    assert is_placeholder("<set me>")
    assert is_placeholder("")
    assert not is_placeholder("sk-live-123")
