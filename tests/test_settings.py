from nexus_sales.infrastructure.config import get_settings
from nexus_sales.infrastructure.config.settings import DEFAULT_COMMAND_MAP


def test_defaults():
    settings = get_settings()

    assert settings.facebook.read_api_version == "v18.0"
    assert settings.facebook.reply_api_version == "v19.0"
    assert settings.facebook.max_pages == 1000
    assert settings.browser.enabled is False
    assert settings.notifications.poll_interval_seconds == 3600
    assert settings.commands.function_map == DEFAULT_COMMAND_MAP


def test_settings_cached():
    assert get_settings() is get_settings()


def test_command_map_override(set_env):
    set_env(NEXUS_COMMAND_MAP="Facebook.Post.Scan=read_comments; broken ;Facebook.Comment.Reply = reply_to_comment")

    commands = get_settings().commands

    assert commands.lookup("Facebook.Post.Scan") == "read_comments"
    assert commands.lookup("Facebook.Comment.Reply") == "reply_to_comment"
    assert commands.lookup("Facebook.Post.ExtractId") == "extract_id_with_tokens"
    assert commands.lookup("Missing.Key") is None


def test_validate_warns_without_credentials():
    issues = get_settings().validate()
    assert any("FACEBOOK_ACCESS_TOKEN" in issue for issue in issues)
    assert any("FACEBOOK_C_USER" in issue for issue in issues)


def test_validate_clean_with_credentials(set_env):
    set_env(FACEBOOK_ACCESS_TOKEN="tok", FACEBOOK_C_USER="1", FACEBOOK_XS="x")
    assert get_settings().validate() == []


def test_browser_flag(set_env):
    set_env(FACEBOOK_BROWSER_FALLBACK="yes")
    assert get_settings().browser.enabled is True
