"""Tests for tenant domain resolution."""

from urllib.parse import urlparse

import pytest

from tenant_auth.auth.errors import ConfigurationError, MissingTenantError
from tenant_auth.auth.tenant import (
    apply_tenant_placeholder,
    resolve_auth_origin,
    resolve_tenant_custom_domain,
    resolve_tenant_domain_name,
    resolve_tenant_subdomain,
)
from tenant_auth.tests.conftest import APPLICATION_DOMAIN, ROOT_DOMAIN, make_config, make_flat_config


class TestTenantSubdomain:

    @pytest.mark.parametrize("host, expected", [
        ("devs4you.business.invotastic.com", "devs4you"),
        ("devs4you.business.invotastic.com:8443", "devs4you"),
        ("DEVS4YOU.Business.Invotastic.com", "devs4you"),
        ("a-b-c.business.invotastic.com", "a-b-c"),
    ])
    def test_extracts_left_label(self, host, expected):
        assert resolve_tenant_subdomain(host, ROOT_DOMAIN) == expected

    @pytest.mark.parametrize("host", [
        "business.invotastic.com",
        "devs4you.other.com",
        "devs4you.notbusiness.invotastic.com.evil.com",
        "xbusiness.invotastic.com",
        "deep.devs4you.business.invotastic.com",
        "",
    ])
    def test_rejects_hosts_outside_root_domain(self, host):
        with pytest.raises(ConfigurationError):
            resolve_tenant_subdomain(host, ROOT_DOMAIN)


class TestTenantDomainName:

    def test_subdomain_mode_uses_host(self):
        config = make_config()
        tenant = resolve_tenant_domain_name(
            "devs4you.business.invotastic.com", config, query_tenant_domain_name="ignored"
        )
        assert tenant == "devs4you"

    def test_subdomain_mode_fails_on_foreign_host(self):
        with pytest.raises(ConfigurationError):
            resolve_tenant_domain_name("localhost:8080", make_config())

    def test_query_param_wins_over_default(self):
        config = make_flat_config()
        assert resolve_tenant_domain_name("app.invotastic.com", config, "acme", "fallback") == "acme"
        assert resolve_tenant_domain_name("app.invotastic.com", config, None, "fallback") == "fallback"

    def test_missing_tenant_raises(self):
        with pytest.raises(MissingTenantError):
            resolve_tenant_domain_name("app.invotastic.com", make_flat_config())

    def test_missing_tenant_is_a_configuration_error(self):
        assert issubclass(MissingTenantError, ConfigurationError)

    @pytest.mark.parametrize("tenant", ["evil.com/x", "a b", "-dash", "tenant?x=1"])
    def test_rejects_tenant_names_that_are_not_labels(self, tenant):
        with pytest.raises(ConfigurationError):
            resolve_tenant_domain_name("app.invotastic.com", make_flat_config(), tenant)


class TestAuthOrigin:

    def test_custom_domains_use_dot_separator(self):
        origin = resolve_auth_origin("devs4you", make_config(USE_CUSTOM_DOMAINS=True))
        assert origin == f"https://devs4you.{APPLICATION_DOMAIN}"

    def test_vanity_domains_use_dash_separator(self):
        origin = resolve_auth_origin("devs4you", make_config(USE_CUSTOM_DOMAINS=False))
        assert origin == f"https://devs4you-{APPLICATION_DOMAIN}"

    def test_tenant_custom_domain_takes_precedence(self):
        origin = resolve_auth_origin("devs4you", make_config(), tenant_custom_domain="login.devs4you.com")
        assert origin == "https://login.devs4you.com"

    def test_no_tenant_and_no_custom_domain_raises(self):
        with pytest.raises(MissingTenantError):
            resolve_auth_origin(None, make_config())

    @pytest.mark.parametrize("use_custom_domains", [True, False])
    @pytest.mark.parametrize("host", [
        "devs4you.business.invotastic.com",
        "x.business.invotastic.com:443",
        "tenant-0123.business.invotastic.com",
    ])
    def test_origin_is_valid_and_contains_tenant(self, host, use_custom_domains):
        config = make_config(USE_CUSTOM_DOMAINS=use_custom_domains)
        tenant = resolve_tenant_domain_name(host, config)
        origin = resolve_auth_origin(tenant, config)

        parsed = urlparse(origin)
        assert parsed.scheme == "https"
        assert parsed.path == ""
        assert parsed.hostname.startswith(tenant)
        assert parsed.hostname.endswith(APPLICATION_DOMAIN)
        assert f"{parsed.scheme}://{parsed.netloc}" == origin


class TestHelpers:

    def test_tenant_custom_domain_query_wins(self):
        assert resolve_tenant_custom_domain("a.example.com", "b.example.com") == "a.example.com"
        assert resolve_tenant_custom_domain(None, "b.example.com") == "b.example.com"
        assert resolve_tenant_custom_domain(None, None) is None

    def test_tenant_custom_domain_rejects_urls(self):
        with pytest.raises(ConfigurationError):
            resolve_tenant_custom_domain("https://a.example.com/path")

    def test_apply_tenant_placeholder(self):
        url = "https://{tenant_domain}.business.invotastic.com/api/auth/login"
        assert apply_tenant_placeholder(url, "acme") == "https://acme.business.invotastic.com/api/auth/login"
        assert apply_tenant_placeholder("https://app.example.com/login", None) == "https://app.example.com/login"

    def test_apply_tenant_placeholder_requires_tenant(self):
        with pytest.raises(MissingTenantError):
            apply_tenant_placeholder("https://{tenant_domain}.example.com", None)
