"""Unit tests for DescriptionParser."""
from decimal import Decimal

import pytest

from processor.description_parser import (
    IMAGE_URL_RULES,
    TICKET_VENDOR_RULES,
    DescriptionParser,
    clean_url,
    extract_urls,
    first_matching_url,
)


@pytest.fixture
def parser():
    return DescriptionParser()


class TestDirectives:
    """Test cases for the key: value directive lines."""

    def test_tickets_and_tags(self, parser):
        """Test the canonical directive example."""
        fields, clean = parser.parse(
            'Join us!\nTickets: https://example.com/t\nTags: concert, live'
        )

        assert fields.tickets_url == 'https://example.com/t'
        assert fields.tags == {'concert', 'live'}
        assert clean == 'Join us!'

    def test_all_directives(self, parser):
        """Test every key in the vocabulary is recognized."""
        fields, clean = parser.parse(
            'Season opener\n'
            'TICKETS: https://tix.example/e/1\n'
            'source: https://venue.example/calendar\n'
            'Image: https://cdn.example/poster\n'
            'Tags: Comedy, , Stand Up \n'
            'Organizer: Laugh Factory YVR\n'
            'PriceFrom: 25.50\n'
            'Featured: yes'
        )

        assert fields.tickets_url == 'https://tix.example/e/1'
        assert fields.source_url == 'https://venue.example/calendar'
        assert fields.image_url == 'https://cdn.example/poster'
        assert fields.tags == {'comedy', 'stand up'}
        assert fields.organizer_override == 'Laugh Factory YVR'
        assert fields.price_from == Decimal('25.50')
        assert fields.featured is True
        assert clean == 'Season opener'

    def test_price_accepts_dollar_sign(self, parser):
        fields, _ = parser.parse('pricefrom: $40')
        assert fields.price_from == Decimal('40')

    def test_malformed_directives_are_ignored(self, parser):
        """Test malformed values are neither recorded nor removed."""
        fields, clean = parser.parse(
            'Tickets: at the door\nPriceFrom: free\nFeatured: maybe\nTags: ,'
        )

        assert fields.tickets_url is None
        assert fields.price_from is None
        assert fields.featured is False
        assert fields.tags == set()
        assert clean == 'Tickets: at the door\nPriceFrom: free\nFeatured: maybe\nTags: ,'

    def test_featured_false_token(self, parser):
        fields, clean = parser.parse('Featured: no')
        assert fields.featured is False
        assert clean is None

    def test_unknown_keys_are_kept(self, parser):
        fields, clean = parser.parse('Doors: 7pm\nDress code: smart')
        assert clean == 'Doors: 7pm\nDress code: smart'


class TestFallbacks:
    """Test cases for URL inference when directives are absent."""

    def test_single_url_becomes_tickets(self, parser):
        fields, _ = parser.parse('Grab a seat at https://vendor.example/event/123 today')
        assert fields.tickets_url == 'https://vendor.example/event/123'

    def test_ticket_vendor_is_preferred(self, parser):
        fields, _ = parser.parse(
            'Info https://venue.example/about\n'
            'Buy at https://www.eventbrite.ca/e/bhangra-night-123'
        )
        assert fields.tickets_url == 'https://www.eventbrite.ca/e/bhangra-night-123'

    def test_tickets_directive_wins_over_vendor(self, parser):
        fields, _ = parser.parse(
            'https://www.eventbrite.com/e/1\nTickets: https://own.example/t'
        )
        assert fields.tickets_url == 'https://own.example/t'

    def test_image_by_extension_first(self, parser):
        fields, _ = parser.parse(
            'https://img.evbuc.com/abc\nhttps://cdn.example/poster.JPG?w=800'
        )
        assert fields.image_url == 'https://cdn.example/poster.JPG?w=800'

    def test_image_by_hosting_domain(self, parser):
        fields, _ = parser.parse('Poster https://res.cloudinary.com/demo/abc')
        assert fields.image_url == 'https://res.cloudinary.com/demo/abc'

    def test_no_image_found(self, parser):
        fields, _ = parser.parse('See https://venue.example/page')
        assert fields.image_url is None

    def test_all_urls_collected_including_directives(self, parser):
        fields, _ = parser.parse(
            'Tickets: https://a.example/t\nMore at https://b.example/info.'
        )
        assert fields.urls == ['https://a.example/t', 'https://b.example/info']


class TestMarkup:
    """Test cases for HTML descriptions."""

    def test_html_lines_and_entities(self, parser):
        """Test markup becomes line breaks and entities are decoded."""
        fields, clean = parser.parse(
            '<p>Rock &amp; Roll night</p><br>'
            'Tickets: <a href="https://www.eventbrite.ca/e/99">https://www.eventbrite.ca/e/99</a>'
            '<br/>Tags: concert'
        )

        assert fields.tickets_url == 'https://www.eventbrite.ca/e/99'
        assert fields.tags == {'concert'}
        assert clean == 'Rock & Roll night'

    def test_labelled_link_directive_is_consumed(self, parser):
        fields, clean = parser.parse(
            'See you there<br>Tickets: <a href="https://tix.example/buy">Buy here</a>'
        )

        assert fields.tickets_url == 'https://tix.example/buy'
        assert clean == 'See you there'

    def test_link_href_is_visible_to_fallbacks(self, parser):
        fields, clean = parser.parse('<a href="https://dice.fm/event/xyz">Get tickets</a>')

        assert fields.tickets_url == 'https://dice.fm/event/xyz'
        assert clean == 'Get tickets https://dice.fm/event/xyz'

    def test_blank_lines_collapse(self, parser):
        _, clean = parser.parse('First\n\n\n\n\nSecond\nTags: club\n\n\nThird')
        assert clean == 'First\n\nSecond\n\nThird'

    def test_whitespace_is_collapsed(self, parser):
        _, clean = parser.parse('  Lots   of\tspace here  ')
        assert clean == 'Lots of space here'


class TestEdgeCases:

    @pytest.mark.parametrize('description', [None, '', '   \n  '])
    def test_empty_description(self, parser, description):
        fields, clean = parser.parse(description)
        assert clean is None
        assert fields.tickets_url is None
        assert fields.urls == []

    def test_broken_markup_never_raises(self, parser):
        fields, clean = parser.parse('<div><a href="https://x.example/1">unclosed <b>tag &bogus;')
        assert fields.tickets_url == 'https://x.example/1'
        assert clean is not None


class TestUrlHelpers:

    def test_clean_url_strips_trailing_punctuation(self):
        assert clean_url('https://a.example/x).') == 'https://a.example/x'
        assert clean_url('https://en.wikipedia.org/wiki/Foo_(bar)') == \
            'https://en.wikipedia.org/wiki/Foo_(bar)'

    def test_extract_urls_deduplicates_in_order(self):
        text = 'https://b.example https://a.example https://b.example'
        assert extract_urls(text) == ['https://b.example', 'https://a.example']

    def test_rule_order_decides_precedence(self):
        urls = ['https://tickets.ticketmaster.com/e/1', 'https://www.eventbrite.com/e/2']
        assert first_matching_url(urls, TICKET_VENDOR_RULES) == 'https://www.eventbrite.com/e/2'
        assert first_matching_url(['https://imgur.com/a'], IMAGE_URL_RULES) == 'https://imgur.com/a'
