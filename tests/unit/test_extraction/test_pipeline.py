"""Tests for extractor dispatch."""

import json

from harvest.extraction.pipeline import extract_candidates
from harvest.models import CandidateSource, Channel, RawResponse, TargetKind

BASE = "https://www.vitals.com"


def document(body, channel=Channel.DOCUMENT):
    return RawResponse(status_code=200, body=body, channel=channel, url=f"{BASE}/doctors/x")


def next_data_script(data):
    return f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(data)}</script>'


class TestDataEndpoint:
    """Tests for JSON bodies."""

    def test_listing_payload(self):
        payload = {"pageProps": {"results": [{"seoUrl": "/doctors/dr-a", "name": "Dr. A", "specialty": "Cardiology"}]}}

        candidates = extract_candidates(
            TargetKind.LISTING, document(json.dumps(payload), Channel.DATA_ENDPOINT), BASE
        )

        assert len(candidates) == 1
        assert candidates[0].source == CandidateSource.DATA_ENDPOINT
        assert candidates[0].fields["url"] == "https://www.vitals.com/doctors/dr-a"

    def test_detail_payload(self):
        payload = {"pageProps": {"provider": {"name": "Dr. Jane Roe", "phone": "555"}}}

        candidates = extract_candidates(
            TargetKind.DETAIL, document(json.dumps(payload), Channel.DATA_ENDPOINT), BASE
        )

        assert [c.fields["name"] for c in candidates] == ["Dr. Jane Roe"]

    def test_non_json_body(self):
        assert extract_candidates(TargetKind.DETAIL, document("<html>", Channel.DATA_ENDPOINT), BASE) == []

    def test_empty_body(self):
        assert extract_candidates(TargetKind.DETAIL, document(""), BASE) == []


class TestDocument:
    """Tests for HTML bodies."""

    def test_detail_combines_sources(self):
        ld = {"@type": "Physician", "name": "Dr. Jane Roe", "aggregateRating": {"ratingValue": 4.5}}
        html = (
            "<html><head>"
            f'<script type="application/ld+json">{json.dumps(ld)}</script>'
            "</head><body><h1>Dr. Jane Roe</h1></body></html>"
        )

        candidates = extract_candidates(TargetKind.DETAIL, document(html), BASE)
        sources = [c.source for c in candidates]

        assert sources == [CandidateSource.EMBEDDED_METADATA, CandidateSource.DOM_HEURISTIC]
        assert candidates[0].fields["rating"] == 4.5

    def test_embedded_payload_first(self):
        data = {"props": {"pageProps": {"provider": {"name": "Dr. Embedded", "telephone": "555"}}}}
        html = f"<html><head>{next_data_script(data)}</head><body><h1>Dr. Embedded</h1></body></html>"

        candidates = extract_candidates(TargetKind.DETAIL, document(html), BASE)

        assert candidates[0].source == CandidateSource.DATA_ENDPOINT
        assert candidates[0].fields["phone"] == "555"

    def test_listing_dedups_dom_against_embedded(self):
        data = {"props": {"pageProps": {"results": [{"url": "/doctors/Dr_A.html", "name": "Dr. Alpha"}]}}}
        html = (
            f"<html><head>{next_data_script(data)}</head><body>"
            '<li><a href="/doctors/Dr_A.html">Dr. Alpha</a></li>'
            '<li><a href="/doctors/Dr_B.html">Dr. Bravo</a></li>'
            "</body></html>"
        )

        candidates = extract_candidates(TargetKind.LISTING, document(html), BASE)

        assert [c.fields["url"] for c in candidates] == [
            "https://www.vitals.com/doctors/Dr_A.html",
            "https://www.vitals.com/doctors/Dr_B.html",
        ]
        assert [c.source for c in candidates] == [CandidateSource.DATA_ENDPOINT, CandidateSource.DOM_HEURISTIC]

    def test_unrecognized_page(self):
        assert extract_candidates(TargetKind.DETAIL, document("<html><body><p>hi</p></body></html>"), BASE) == []

    def test_idempotent(self):
        html = "<html><body><h1>Dr. Jane Roe</h1><a href='tel:1'>555</a></body></html>"
        first = extract_candidates(TargetKind.DETAIL, document(html), BASE)
        second = extract_candidates(TargetKind.DETAIL, document(html), BASE)
        assert [c.fields for c in first] == [c.fields for c in second]
