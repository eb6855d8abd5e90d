import pytest

from tender_harvester.config import AdapterConfig, PortalTarget
from tender_harvester.scrapers.exceptions import ConfigurationError
from tender_harvester.scrapers.models import SourceDescriptor
from tender_harvester.scrapers.targets import (
    build_targets,
    derive_targets,
    host_in_family,
    resolve_adapter,
)


@pytest.fixture
def family_adapter():
    return AdapterConfig(
        label="Bonfire",
        family_domains=["bonfirehub.ca", "bonfirehub.com"],
        listing_path="/portal/?tab=openOpportunities",
        targets=[PortalTarget(key="bonfire-generic", label="Bonfire - Generic", list_url="https://bonfirehub.ca/opportunities")],
    )


def test_host_in_family_respects_label_boundaries():
    assert host_in_family("halifax.bonfirehub.ca", ["bonfirehub.ca"])
    assert host_in_family("bonfirehub.ca", ["bonfirehub.ca"])
    assert host_in_family("City.BonfireHub.CA", ["bonfirehub.ca"])
    assert not host_in_family("notbonfirehub.ca", ["bonfirehub.ca"])
    assert not host_in_family("bonfirehub.ca.evil.com", ["bonfirehub.ca"])


def test_derives_one_target_per_tenant(family_adapter):
    sources = [
        SourceDescriptor(name="City of Halifax", url="https://halifax.bonfirehub.ca/portal"),
        SourceDescriptor(name="Unrelated", url="https://tenders.example.gov/"),
        SourceDescriptor(name="", url="https://york.bonfirehub.com/opportunities/123"),
    ]

    targets = derive_targets("bonfire", family_adapter, sources)

    assert [t.key for t in targets] == ["bonfire-halifax-bonfirehub-ca", "bonfire-york-bonfirehub-com"]
    assert targets[0].label == "City of Halifax - Bonfire"
    assert targets[0].list_url == "https://halifax.bonfirehub.ca/portal/?tab=openOpportunities"
    assert targets[1].label == "york.bonfirehub.com - Bonfire"
    assert all(t.adapter == "bonfire" for t in targets)


def test_duplicate_tenants_are_collapsed(family_adapter):
    sources = [
        SourceDescriptor(name="Halifax", url="https://halifax.bonfirehub.ca/portal"),
        SourceDescriptor(name="Halifax again", url="https://halifax.bonfirehub.ca/opportunities/9"),
    ]
    assert len(derive_targets("bonfire", family_adapter, sources)) == 1


def test_family_falls_back_to_static_targets(family_adapter):
    targets = build_targets("bonfire", family_adapter, [SourceDescriptor(url="https://tenders.example.gov/")])

    assert [t.key for t in targets] == ["bonfire-generic"]
    assert targets[0].adapter == "bonfire"


def test_static_adapter_ignores_sources(adapter):
    targets = build_targets("testportal", adapter, [SourceDescriptor(url="https://halifax.bonfirehub.ca/")])
    assert [t.key for t in targets] == ["testportal"]


def test_adapter_without_targets_is_rejected():
    with pytest.raises(ConfigurationError):
        build_targets("empty", AdapterConfig(label="Empty"))


def test_resolve_adapter_normalises_source(config):
    key, adapter = resolve_adapter(config, "  TestPortal ")
    assert key == "testportal"
    assert adapter.label == "Test Portal"


def test_unknown_source(config):
    with pytest.raises(ConfigurationError) as excinfo:
        resolve_adapter(config, "atlantis")
    assert "testportal" in str(excinfo.value)
    assert excinfo.value.source == "atlantis"
