"""
Tests for utils/bundle.py and utils/codec.py — export/import through a real Store.
"""
import base64
import json

import pytest

from database.errors import FormatError, NotFoundError, PersistenceError
from utils.bundle import BUNDLE_VERSION, build_bundle, export_deck, import_deck
from utils.codec import ENCODE_CHUNK, decode_image, encode_image
from utils.srs import EASY, GOOD

PNG = bytes(range(256)) * 200  # larger than one encode chunk


def _bundle(**overrides):
    data = {
        'name': 'Spanish',
        'description': 'verbs',
        'version': 1,
        'exported_at': 1,
        'cards': [
            {'front_text': 'hablar', 'back_text': 'to speak', 'front_image': None, 'back_image': None},
        ],
    }
    data.update(overrides)
    return json.dumps(data)


# ── Codec ─────────────────────────────────────────────────────

class TestCodec:
    def test_matches_one_shot_base64(self):
        assert len(PNG) > ENCODE_CHUNK
        assert encode_image(PNG) == base64.b64encode(PNG).decode('ascii')

    def test_round_trip_large(self):
        assert decode_image(encode_image(PNG)) == PNG

    def test_empty_bytes(self):
        assert encode_image(b'') == ''
        assert decode_image('') == b''

    def test_decode_ignores_line_breaks(self):
        text = encode_image(b'hello world')
        wrapped = text[:4] + '\n' + text[4:8] + '\r\n ' + text[8:]
        assert decode_image(wrapped) == b'hello world'

    @pytest.mark.parametrize('text', ['@@@@', 'abc', 'YQ==YQ==', 'ü===='])
    def test_invalid_text_rejected(self, text):
        with pytest.raises(FormatError):
            decode_image(text)

    def test_non_string_rejected(self):
        with pytest.raises(FormatError):
            decode_image(12345)


# ── Export ────────────────────────────────────────────────────

class TestExport:
    def test_document_shape(self, store, deck_id):
        store.create_card(deck_id, 'q', 'a', front_image=b'\x01\x02')
        bundle = build_bundle(store, deck_id)
        assert bundle['name'] == 'Vocab'
        assert bundle['description'] == 'Test deck'
        assert bundle['version'] == BUNDLE_VERSION
        assert isinstance(bundle['exported_at'], int)
        assert bundle['cards'] == [
            {'front_text': 'q', 'back_text': 'a', 'front_image': 'AQI=', 'back_image': None},
        ]

    def test_scheduling_state_omitted(self, store, deck_id):
        card_id = store.create_card(deck_id, 'q', 'a')
        store.review_card(card_id, EASY)
        exported = json.loads(export_deck(store, deck_id))
        assert set(exported['cards'][0].keys()) == {'front_text', 'back_text', 'front_image', 'back_image'}

    def test_export_is_json_text(self, store, deck_id):
        store.create_card(deck_id, 'café', 'naïve')
        text = export_deck(store, deck_id)
        assert json.loads(text)['cards'][0]['front_text'] == 'café'

    def test_missing_deck(self, store):
        with pytest.raises(NotFoundError):
            export_deck(store, 321)

    def test_empty_deck(self, store, deck_id):
        assert build_bundle(store, deck_id)['cards'] == []

    def test_exported_at_uses_store_clock(self, store, deck_id, clock):
        clock.advance(days=3)
        assert build_bundle(store, deck_id)['exported_at'] == clock.now


# ── Import ────────────────────────────────────────────────────

class TestImport:
    def test_round_trip_preserves_content(self, store, deck_id, clock):
        store.create_card(deck_id, 'front 1', 'back 1', front_image=PNG, back_image=b'\x00')
        second = store.create_card(deck_id, 'front 2', 'back 2')
        store.review_card(second, GOOD)
        clock.advance(days=3)

        new_id = import_deck(store, export_deck(store, deck_id))

        assert new_id != deck_id
        originals = store.get_cards(deck_id)
        copies = store.get_cards(new_id)
        assert [c.content() for c in copies] == [c.content() for c in originals]
        assert copies[0].front_image == PNG
        assert copies[0].back_image == b'\x00'
        assert copies[1].front_image is None

    def test_empty_image_round_trips_as_none(self, store, deck_id):
        store.create_card(deck_id, 'q', 'a', front_image=b'\x01', back_image=b'')
        new_id = import_deck(store, export_deck(store, deck_id))
        card = store.get_cards(new_id)[0]
        assert card.front_image == b'\x01'
        assert card.back_image is None

    def test_round_trip_resets_scheduling(self, store, deck_id, clock):
        card_id = store.create_card(deck_id, 'q', 'a')
        store.review_card(card_id, EASY)
        clock.advance(days=10)

        new_id = import_deck(store, export_deck(store, deck_id))

        (card,) = store.get_cards(new_id)
        assert card.reviews == 0
        assert card.interval == 0
        assert card.ease_factor == pytest.approx(2.5)
        assert card.next_review_due == clock.now
        assert store.get_review_logs(card.id) == []
        assert [c.id for c in store.get_due_cards(new_id)] == [card.id]

    def test_new_deck_name_is_suffixed(self, store, deck_id):
        new_id = import_deck(store, export_deck(store, deck_id))
        deck = store.get_deck(new_id)
        assert deck.name == 'Vocab (Import)'
        assert deck.description == 'Test deck'

    def test_source_deck_untouched(self, store, deck_id):
        store.create_card(deck_id, 'q', 'a')
        import_deck(store, export_deck(store, deck_id))
        assert store.get_deck(deck_id).name == 'Vocab'
        assert len(store.get_cards(deck_id)) == 1

    def test_accepts_bytes(self, store):
        new_id = import_deck(store, _bundle().encode('utf-8'))
        assert store.get_deck(new_id).name == 'Spanish (Import)'

    def test_missing_optional_fields(self, store):
        doc = json.dumps({'name': 'Bare', 'cards': [{'front_text': 'only front'}]})
        new_id = import_deck(store, doc)
        (card,) = store.get_cards(new_id)
        assert card.back_text == ''
        assert card.front_image is None
        assert store.get_deck(new_id).description == ''

    def test_empty_cards_creates_empty_deck(self, store):
        new_id = import_deck(store, _bundle(cards=[]))
        assert store.get_cards(new_id) == []

    def test_import_is_durable(self, store, slot, clock):
        from database.database import Store

        new_id = import_deck(store, _bundle())
        store.close()
        with Store(slot=slot, clock=clock) as reopened:
            assert len(reopened.get_cards(new_id)) == 1


# ── Rejected bundles ──────────────────────────────────────────

class TestImportRejected:
    @pytest.mark.parametrize('content', [
        '{not json',
        '',
        b'\xff\xfe',
        '[]',
        '"just a string"',
        json.dumps({'cards': []}),
        json.dumps({'name': '   ', 'cards': []}),
        json.dumps({'name': 42, 'cards': []}),
        json.dumps({'name': 'No cards'}),
        json.dumps({'name': 'Bad cards', 'cards': {'front_text': 'x'}}),
        json.dumps({'name': 'Future', 'version': 2, 'cards': []}),
        json.dumps({'name': 'Odd card', 'cards': ['front | back']}),
        json.dumps({'name': 'Odd text', 'cards': [{'front_text': ['x']}]}),
        json.dumps({'name': 'Odd desc', 'description': 5, 'cards': []}),
    ])
    def test_format_error_and_no_deck(self, store, content):
        with pytest.raises(FormatError):
            import_deck(store, content)
        assert store.list_decks() == []

    def test_bad_image_rejects_whole_bundle(self, store):
        cards = [
            {'front_text': 'fine', 'back_text': 'a', 'front_image': encode_image(b'ok')},
            {'front_text': 'broken', 'back_text': 'b', 'front_image': 'not base64!'},
        ]
        with pytest.raises(FormatError):
            import_deck(store, _bundle(cards=cards))
        assert store.list_decks() == []
        assert store.get_overview()['cards'] == 0

    def test_failed_write_leaves_no_partial_deck(self, store, slot, monkeypatch):
        def broken_save(blob):
            raise PersistenceError("disk full")

        monkeypatch.setattr(slot, 'save', broken_save)
        with pytest.raises(PersistenceError):
            import_deck(store, _bundle())
        assert store.list_decks() == []
        assert store.get_overview()['cards'] == 0
