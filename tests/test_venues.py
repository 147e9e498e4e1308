import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from paddleperf.venues import VenueEnricher, parse_formatted_address, read_rows, venue_fields

CSV_HEADER = (
    "Event_Id,Event_URL,Event_Title,Event_startDate,Location_formattedAddress,"
    "Location_Latitude,Location_Longitude,Location_Location,Location_Name,"
    "Location_countryCode,State_countryCode,State_Code,State_Name\n"
)


class FakeStore:
    def __init__(self, competitions):
        self.competitions = competitions
        self.updates = []

    def find_competition_by_website(self, url):
        return self.competitions.get(url)

    def update_venue(self, venue_id, fields):
        self.updates.append((venue_id, fields))


def test_parse_full_address():
    parts = parse_formatted_address("487 Seaport Ct, Redwood City, CA 94063, USA")
    assert parts == {"street": "487 Seaport Ct", "city": "Redwood City", "postal_code": "94063"}


def test_parse_address_with_multi_part_street_and_zip4():
    parts = parse_formatted_address("Pier 39, The Embarcadero, San Francisco, CA 94133-1234, USA")
    assert parts["street"] == "Pier 39, The Embarcadero"
    assert parts["city"] == "San Francisco"
    assert parts["postal_code"] == "94133-1234"


def test_parse_short_address_only_has_city():
    assert parse_formatted_address("Hood River, OR, USA") == {
        "street": None, "city": "Hood River", "postal_code": None,
    }
    assert parse_formatted_address("") == {"street": None, "city": None, "postal_code": None}


def test_venue_fields_prefers_location_name():
    row = {
        "Location_formattedAddress": "West Beach, Santa Barbara, CA 93109, USA",
        "Location_Latitude": "34.4078",
        "Location_Longitude": "-119.6934",
        "Location_Name": "",
        "Location_countryCode": "US",
        "State_Code": "CA",
    }
    fields = venue_fields(row, "Return to the Pier 2025")
    assert fields["name"] == "West Beach, Santa Barbara, CA 93109, USA"
    assert fields["latitude"] == 34.4078
    assert fields["state"] == "CA"
    assert fields["country"] == "US"
    assert fields["venue_type"] == "OUTDOOR"
    assert fields["description"] == (
        "Venue for Return to the Pier 2025. Address: West Beach, Santa Barbara, CA 93109, USA"
    )


def test_run_updates_matches_and_skips_the_rest(tmp_path):
    path = tmp_path / "venues.csv"
    path.write_text(
        CSV_HEADER
        + 'e1,https://paddleguru.com/races/e1,Pier,2025-07-18,"West Beach, Santa Barbara, CA 93109, USA",'
          "34.4,-119.7,,Leadbetter Beach,US,US,CA,California\n"
        + 'e2,https://paddleguru.com/races/e2,Gorge,2025-08-01,"Hood River, OR, USA",45.7,-121.5,,,US,US,OR,Oregon\n'
        + 'e3,https://paddleguru.com/races/e3,Nowhere,2025-08-09,"Somewhere, CA, USA",1,2,,,US,US,CA,California\n'
        + "\n"
    )
    store = FakeStore({
        "https://paddleguru.com/races/e1": {"competition_id": 1, "venue_id": 10, "name": "Return to the Pier"},
        "https://paddleguru.com/races/e2": {"competition_id": 2, "venue_id": None, "name": "Gorge Challenge"},
    })
    rows = read_rows(path)
    assert len(rows) == 3

    counts = VenueEnricher(store=store).run(rows)
    assert counts == {"processed": 3, "updated": 1, "skipped": 2, "errors": 0}
    venue_id, fields = store.updates[0]
    assert venue_id == 10
    assert fields["name"] == "Leadbetter Beach"
    assert fields["city"] == "Santa Barbara"
    assert fields["postal_code"] == "93109"
    assert fields["street"] == "West Beach"


def test_row_errors_are_counted():
    class BrokenStore(FakeStore):
        def update_venue(self, venue_id, fields):
            raise RuntimeError("db down")

    store = BrokenStore({"u": {"competition_id": 1, "venue_id": 3, "name": "X"}})
    counts = VenueEnricher(store=store).run([{"Event_URL": "u", "Location_formattedAddress": "A, B, CA 90000, USA"}])
    assert counts["errors"] == 1
    assert counts["processed"] == 0
