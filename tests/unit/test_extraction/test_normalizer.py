"""Tests for the record normalizer."""

from harvest.extraction.normalizer import is_present, merge_fields, merge_record
from harvest.models import Candidate, CandidateSource, Channel

URL = "https://www.vitals.com/doctors/Dr_Jane_Roe.html"


def candidate(source, **fields):
    return Candidate(source=source, fields=fields)


class TestIsPresent:
    """Tests for is_present."""

    def test_values(self):
        assert is_present(0)
        assert is_present(0.0)
        assert is_present("x")
        assert is_present(["a"])

    def test_missing(self):
        assert not is_present(None)
        assert not is_present("")
        assert not is_present("   ")
        assert not is_present([])
        assert not is_present({})


class TestMergeFields:
    """Tests for per-field precedence."""

    def test_rating_from_embedded_metadata_survives(self):
        candidates = [
            candidate(CandidateSource.DOM_HEURISTIC, name="Dr. Jane Roe", rating=None),
            candidate(CandidateSource.EMBEDDED_METADATA, name="Jane Roe, MD", rating=4.5),
        ]

        merged = merge_fields(candidates)

        assert merged["rating"] == 4.5
        assert merged["name"] == "Jane Roe, MD"

    def test_fields_combine_across_candidates(self):
        candidates = [
            candidate(CandidateSource.DATA_ENDPOINT, name="Dr. A", phone=None),
            candidate(CandidateSource.DOM_HEURISTIC, phone="(555) 010-0100", bio="Bio"),
        ]

        merged = merge_fields(candidates)

        assert merged["name"] == "Dr. A"
        assert merged["phone"] == "(555) 010-0100"
        assert merged["bio"] == "Bio"

    def test_data_endpoint_beats_dom(self):
        candidates = [
            candidate(CandidateSource.DOM_HEURISTIC, phone="111"),
            candidate(CandidateSource.DATA_ENDPOINT, phone="222"),
        ]
        assert merge_fields(candidates)["phone"] == "222"

    def test_zero_is_kept(self):
        candidates = [
            candidate(CandidateSource.DATA_ENDPOINT, review_count=0),
            candidate(CandidateSource.DOM_HEURISTIC, review_count=12),
        ]
        assert merge_fields(candidates)["review_count"] == 0

    def test_empty_string_falls_through(self):
        candidates = [
            candidate(CandidateSource.DATA_ENDPOINT, specialty=""),
            candidate(CandidateSource.EMBEDDED_METADATA, specialty="Cardiology"),
        ]
        assert merge_fields(candidates)["specialty"] == "Cardiology"

    def test_seed_then_defaults(self):
        merged = merge_fields(
            [candidate(CandidateSource.DOM_HEURISTIC, name="Dr. A")],
            seed={"location": "Brooklyn, NY", "specialty": None},
            defaults={"specialty": "Cardiology", "location": "New York, NY"},
        )

        assert merged["location"] == "Brooklyn, NY"
        assert merged["specialty"] == "Cardiology"

    def test_missing_fields_have_empty_values(self):
        merged = merge_fields([])

        assert merged["name"] is None
        assert merged["rating"] is None
        assert merged["education"] == []
        assert merged["address"] == {}

    def test_numeric_coercion(self):
        merged = merge_fields([candidate(CandidateSource.DOM_HEURISTIC, rating="4.2", review_count="17")])

        assert merged["rating"] == 4.2
        assert merged["review_count"] == 17


class TestMergeRecord:
    """Tests for merge_record."""

    def test_provenance_uses_top_source(self):
        record = merge_record(
            URL,
            [
                candidate(CandidateSource.DOM_HEURISTIC, name="Dr. A"),
                candidate(CandidateSource.EMBEDDED_METADATA, rating=4.5),
            ],
            channel=Channel.DOCUMENT,
        )

        assert record.provenance == "document:embedded_metadata"
        assert record.url == URL
        assert record.rating == 4.5

    def test_listing_only_provenance(self):
        record = merge_record(URL, [], seed={"name": "Dr. A", "url": URL})

        assert record.provenance == "listing"
        assert record.name == "Dr. A"

    def test_to_dict_shape(self):
        data = merge_record(URL, [candidate(CandidateSource.DATA_ENDPOINT, name="Dr. A")], channel=Channel.DATA_ENDPOINT).to_dict()

        assert data["provenance"] == "data_endpoint:data_endpoint"
        assert data["specialties"] == []
        assert "fetched_at" in data
