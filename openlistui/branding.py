"""Centralized branding constants — single source of truth for version and
the upstream repositories."""


class AppBranding:
    """Application identity constants."""

    APP_NAME = "OpenListUI"
    VERSION = "1.0.0"

    # Upstream OpenList release source
    VENDOR_REPO = "OpenListTeam/OpenList"
    API_BASE = "https://api.github.com"
    WEB_BASE = "https://github.com"

    # The LuCI front-end package that ships this backend
    LUCI_REPO = "drfccv/luci-app-openlistui"
    LUCI_PACKAGE = "luci-app-openlistui"

    BINARY_NAME = "openlist"

    @classmethod
    def user_agent(cls) -> str:
        return f"{cls.APP_NAME}/{cls.VERSION}"

    @classmethod
    def releases_api_url(cls, repo: str | None = None) -> str:
        return f"{cls.API_BASE}/repos/{repo or cls.VENDOR_REPO}/releases"

    @classmethod
    def releases_page_url(cls, repo: str | None = None) -> str:
        return f"{cls.WEB_BASE}/{repo or cls.VENDOR_REPO}/releases"

    @classmethod
    def rate_limit_url(cls) -> str:
        return f"{cls.API_BASE}/rate_limit"
