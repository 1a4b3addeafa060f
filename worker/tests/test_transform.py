from datetime import datetime, timezone

from leadscout.etl import transform
from leadscout.models import BusinessRecord, Source


def test_derive_city_from_query():
    assert transform.derive_city("restaurants in Vernon") == "Vernon"
    assert transform.derive_city("Plumbers IN New Westminster, ") == "New Westminster"
    assert transform.derive_city("dining options") == "Unknown"
    assert transform.derive_city("") == "Unknown"


def test_explicit_city_wins():
    assert transform.derive_city("restaurants in Vernon", "Kelowna") == "Kelowna"
    assert transform.derive_city("restaurants in Vernon", "  ") == "Vernon"


def test_to_output_row_marks_absent_fields():
    record = BusinessRecord(
        title="Cafe X",
        rank=3,
        source=Source.LISTING_DIRECTORY,
        city="Vernon",
        phone="250-555-0000",
        scraped_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )

    row = transform.to_output_row(record)

    assert row == {
        "title": "Cafe X",
        "industry": "Business",
        "city": "Vernon",
        "url": "N/A",
        "rank": 3,
        "source": "YellowPages",
        "scraped_at": "2024-05-01T12:00:00+00:00",
        "phone": "250-555-0000",
        "email": "N/A",
        "address": "N/A",
        "rating": "N/A",
    }


def test_to_output_rows_preserves_order():
    records = [
        BusinessRecord(title="A", rank=1, source=Source.MAP_DIRECTORY),
        BusinessRecord(title="B", rank=2, source=Source.MAP_DIRECTORY),
    ]
    assert [row["title"] for row in transform.to_output_rows(records)] == ["A", "B"]
