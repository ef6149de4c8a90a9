import pytest

from engagement.errors import MissingPersonalization, ValidationError
from engagement.features.campaigns.services.renderer import CampaignRenderer


@pytest.fixture
def renderer():
    return CampaignRenderer(app_url="https://app.example.com/")


def test_renders_subject_html_and_text(renderer):
    rendered = renderer.render(
        "win_back", "{{ first_name }}, we hebben je gemist", {"first_name": "Sanne", "days_inactive": 120}
    )

    assert rendered.subject == "Sanne, we hebben je gemist"
    assert "Sanne" in rendered.html
    assert "120" in rendered.text
    assert "https://app.example.com/unsubscribe" in rendered.text


def test_html_is_escaped(renderer):
    rendered = renderer.render(
        "valentines", "Hoi {{ first_name }}", {"first_name": "<b>Sanne</b>"}
    )

    assert "&lt;b&gt;Sanne&lt;/b&gt;" in rendered.html
    assert rendered.subject == "Hoi <b>Sanne</b>"


def test_missing_value_is_a_skip(renderer):
    with pytest.raises(MissingPersonalization) as exc_info:
        renderer.render("win_back", "{{ first_name }}", {"first_name": None, "days_inactive": 100}, "u1")

    assert exc_info.value.reason == "missing_personalization"
    assert exc_info.value.user_id == "u1"


def test_unknown_template(renderer):
    with pytest.raises(ValidationError):
        renderer.render("newsletter", "Hoi", {"first_name": "Sanne"})


def test_unsubscribe_link_carries_the_member_token(renderer):
    rendered = renderer.render(
        "win_back",
        "Hoi",
        {"first_name": "Sanne", "days_inactive": 100, "unsubscribe_token": "abc.def/ghi"},
    )

    assert "https://app.example.com/unsubscribe?token=abc.def%2Fghi" in rendered.text
    assert "https://app.example.com/unsubscribe?token=abc.def%2Fghi" in rendered.html
