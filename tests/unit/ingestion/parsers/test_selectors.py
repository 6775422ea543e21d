"""
Unit tests for the tolerant HTML extraction helpers.
"""

import json

import pytest

from event_ingest.ingestion.parsers.selectors import (
    SelectorChain,
    card_title,
    extract_json_ld_events,
    first_attr,
    first_text,
    image_src,
    json_ld_location,
    json_ld_price,
    link_href,
    make_soup,
)

LISTING = """
<html><body>
  <div class="promo">Sponsored</div>
  <li class="event-item" data-eid="11">
    <a href="/mumbai/jazz-night"><h3>  Jazz
        Night </h3></a>
    <span class="date">Sat, 15 Mar</span>
    <img data-src="https://cdn.example/jazz.png" src="data:image/gif;base64,AAAA">
  </li>
  <li class="event-item" data-eid="12">
    <a href="https://other.example/x" title="Food Fest"></a>
    <a href="/mumbai/food-fest"></a>
  </li>
</body></html>
"""


@pytest.fixture
def soup():
    return make_soup(LISTING)


class TestSelectorChain:
    def test_first_matching_strategy_wins(self, soup):
        """The first selector that matches anything is used."""
        chain = SelectorChain.of(".event-card", "li.event-item", "[data-eid]")
        strategy, nodes = chain.first_match(soup)

        assert strategy.selector == "li.event-item"
        assert len(nodes) == 2

    def test_no_match_returns_none(self, soup):
        """A chain with no matching selector returns None."""
        assert SelectorChain.of(".event-card", ".eventCard").first_match(soup) is None

    def test_accept_filter_drops_cards(self, soup):
        """The accept predicate filters the matched nodes."""
        chain = SelectorChain.of("li.event-item", accept=lambda n: n.get("data-eid") == "12")
        _, nodes = chain.first_match(soup)
        assert [n["data-eid"] for n in nodes] == ["12"]

    def test_requires_a_strategy(self):
        """An empty chain is rejected."""
        with pytest.raises(ValueError):
            SelectorChain([])


class TestFieldHelpers:
    def test_first_text_collapses_whitespace(self, soup):
        """first_text returns the first non-empty match with whitespace collapsed."""
        card = soup.select("li.event-item")[0]
        assert first_text(card, [".title", "h3"]) == "Jazz Night"
        assert first_text(card, [".missing"]) == ""

    def test_first_attr(self, soup):
        """first_attr tries each attribute on each selector in turn."""
        card = soup.select("li.event-item")[0]
        assert first_attr(card, ["img"], ["data-missing", "data-src"]) == "https://cdn.example/jazz.png"

    def test_image_src_skips_data_uris(self, soup):
        """Inline data URIs are passed over for a real image URL."""
        card = soup.select("li.event-item")[0]
        assert image_src(card) == "https://cdn.example/jazz.png"

    def test_link_href_resolves_relative(self, soup):
        """Relative hrefs are joined to the base URL."""
        card = soup.select("li.event-item")[0]
        assert link_href(card, "https://allevents.in") == "https://allevents.in/mumbai/jazz-night"

    def test_link_href_with_marker(self, soup):
        """Only links containing a marker are accepted when one is given."""
        card = soup.select("li.event-item")[1]
        assert link_href(card, "https://allevents.in", contains=["/mumbai/"]) == (
            "https://allevents.in/mumbai/food-fest"
        )

    def test_card_title_falls_back_to_title_attribute(self, soup):
        """Without heading text the anchor's title attribute is used."""
        anchor = soup.select("li.event-item")[1].find("a")
        assert card_title(anchor, ["h3"]) == "Food Fest"


class TestJsonLd:
    def _soup_with(self, payload):
        return make_soup(f'<script type="application/ld+json">{json.dumps(payload)}</script>')

    def test_collects_events_from_graph_and_item_list(self):
        """Events nested in @graph and ItemList blocks are all found."""
        payload = {
            "@graph": [
                {"@type": "Organization", "name": "Org"},
                {
                    "@type": "ItemList",
                    "itemListElement": [
                        {"@type": "ListItem", "item": {"@type": "MusicEvent", "name": "A"}},
                        {"@type": "Event", "name": "B"},
                    ],
                },
            ]
        }
        names = [e["name"] for e in extract_json_ld_events(self._soup_with(payload))]
        assert sorted(names) == ["A", "B"]

    def test_broken_json_is_skipped(self):
        """Unparseable JSON-LD blocks are ignored."""
        soup = make_soup('<script type="application/ld+json">{not json</script>')
        assert extract_json_ld_events(soup) == []

    def test_location_with_structured_address(self):
        """A structured address is flattened to venue and street text."""
        item = {
            "location": {
                "name": "Blue Frog",
                "address": {"streetAddress": "Mathuradas Mills", "addressLocality": "Mumbai"},
            }
        }
        assert json_ld_location(item) == ("Blue Frog", "Mathuradas Mills, Mumbai")

    def test_location_as_string(self):
        """A plain string location becomes the venue name."""
        assert json_ld_location({"location": "Online"}) == ("Online", "")

    @pytest.mark.parametrize(
        "offers, expected",
        [
            ({"price": "499", "priceCurrency": "INR"}, "₹499"),
            ({"price": "0", "priceCurrency": "INR"}, "Free"),
            ([{"lowPrice": "20", "priceCurrency": "USD"}], "USD 20"),
            ({}, ""),
        ],
    )
    def test_price(self, offers, expected):
        """Offers are rendered as a display price."""
        assert json_ld_price({"offers": offers}) == expected
