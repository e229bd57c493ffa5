import re

import pytest

from helm_optimize.types import Approval, ContainerIdentity, InvalidSpecError, ResourceBlock

CPU_VALUE = re.compile(r"^[1-9][0-9]*m$")
MEMORY_VALUE = re.compile(r"^[1-9][0-9]*Mi$")


def test_to_manifest_adds_units():
    block = ResourceBlock.from_values(250, 500, 100, 200)
    assert block.to_manifest() == {
        "limits": {"cpu": "250m", "memory": "500Mi"},
        "requests": {"cpu": "100m", "memory": "200Mi"},
    }


def test_manifest_values_are_positive_integers_with_units():
    manifest = ResourceBlock.from_values("1", "64", "1000", "2048").to_manifest()
    for section in ("limits", "requests"):
        assert CPU_VALUE.match(manifest[section]["cpu"])
        assert MEMORY_VALUE.match(manifest[section]["memory"])


@pytest.mark.parametrize("values", [
    (0, 500, 100, 200),
    (250, -1, 100, 200),
    (250, 500, None, 200),
    (250, 500, 100, "2.5"),
    (250, 500, 100, "abc"),
    ("\u00b2", 500, 100, 200),
    (250, "\u0663", 100, 200),
    (True, 500, 100, 200),
])
def test_from_values_rejects_unusable_numbers(values):
    with pytest.raises(InvalidSpecError):
        ResourceBlock.from_values(*values)


def test_from_stored_reads_unitless_spec():
    block = ResourceBlock.from_stored({
        "limits": {"cpu": "250", "memory": "500"},
        "requests": {"cpu": "100", "memory": "200"},
    })
    assert block == ResourceBlock(250, 500, 100, 200)
    assert block.to_stored()["limits"] == {"cpu": "250", "memory": "500"}


def test_from_stored_requires_both_sections():
    with pytest.raises(InvalidSpecError):
        ResourceBlock.from_stored({"limits": {"cpu": "1", "memory": "1"}})


def test_approval_from_bool_and_text():
    assert Approval.from_bool(True) is Approval.APPROVED
    assert Approval.from_bool(False) is Approval.NOT_APPROVED
    assert str(Approval.NOT_APPROVED) == "Not Approved"
    assert Approval.APPROVED.is_approved
    assert not Approval.NOT_APPROVED.is_approved


def test_container_identity_string():
    identity = ContainerIdentity("c1", "ns", "Deployment", "web", "api")
    assert str(identity) == "c1/ns/Deployment/web/api"
