"""
Catalog reads: plain dicts back, database errors surface as DataUnavailable.

  pytest rostercore/stores
"""
import pytest
from sqlalchemy.exc import OperationalError

from rostercore.errors import DataUnavailable
from rostercore.stores.catalog import SqlCatalogStore


def _unreachable_database():
    raise OperationalError("connect", {}, Exception("connection refused"))


def test_swap_pools_are_org_scoped(service):
    catalog = service.catalog
    assert [i["id"] for i in catalog.list_instructors("org-1", exclude_id="I1")] == ["I2", "I3"]
    assert [a["id"] for a in catalog.list_available_aircraft("org-1", exclude_id="AC1")] \
        == ["AC2", "AC3"]
    assert catalog.get_airport("vobg")["name"] == "Bangalore HAL"


@pytest.mark.parametrize("read", [
    lambda c: c.get_aircraft("AC1"),
    lambda c: c.list_instructors("org-1"),
    lambda c: c.list_available_aircraft("org-1"),
])
def test_database_errors_become_data_unavailable(read):
    catalog = SqlCatalogStore(_unreachable_database)
    with pytest.raises(DataUnavailable) as exc:
        read(catalog)
    assert isinstance(exc.value.__cause__, OperationalError)
