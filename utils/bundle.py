"""
Deck bundles: one deck and its cards as a portable JSON document.

Bundles carry content only. Scheduling state is left out on export and every
imported card starts fresh.
"""
import json
import logging
from typing import Any

from database.database import Store
from database.errors import FormatError, NotFoundError
from database.models import CardContent
from utils.codec import decode_image, encode_image

BUNDLE_VERSION = 1
IMPORT_SUFFIX = ' (Import)'


def build_bundle(store: Store, deck_id: int) -> dict[str, Any]:
    deck = store.get_deck(deck_id)
    if deck is None:
        raise NotFoundError(f"Deck {deck_id} does not exist")

    return {
        'name': deck.name,
        'description': deck.description or '',
        'version': BUNDLE_VERSION,
        'exported_at': store.clock(),
        'cards': [
            {
                'front_text': card.front_text,
                'back_text': card.back_text,
                'front_image': encode_image(card.front_image) if card.front_image else None,
                'back_image': encode_image(card.back_image) if card.back_image else None,
            }
            for card in store.get_cards(deck_id)
        ],
    }


def export_deck(store: Store, deck_id: int) -> str:
    bundle = build_bundle(store, deck_id)
    logging.info(f"Exported deck {deck_id} with {len(bundle['cards'])} cards")
    return json.dumps(bundle, indent=2, ensure_ascii=False)


def import_deck(store: Store, content: str | bytes) -> int:
    """
    Materialize a bundle as a new deck and return its id.

    The whole document is validated and every image decoded before anything
    is written; the deck and its cards then go in as one transaction.
    """
    data = parse_bundle(content)
    cards = [_card_content(index, entry) for index, entry in enumerate(data['cards'])]

    name = data['name'].strip() + IMPORT_SUFFIX
    description = data.get('description') or ''
    if not isinstance(description, str):
        raise FormatError("Bundle description must be a string")

    deck_id = store.create_deck_with_cards(name, description, cards)
    logging.info(f"Imported bundle {data['name']!r} as deck {deck_id} ({len(cards)} cards)")
    return deck_id


def parse_bundle(content: str | bytes) -> dict[str, Any]:
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise FormatError(f"Bundle is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise FormatError("Bundle must be a JSON object")

    name = data.get('name')
    if not isinstance(name, str) or not name.strip():
        raise FormatError("Bundle has no deck name")

    if not isinstance(data.get('cards'), list):
        raise FormatError("Bundle has no cards array")

    version = data.get('version', BUNDLE_VERSION)
    if not isinstance(version, int) or version > BUNDLE_VERSION:
        raise FormatError(f"Unsupported bundle version: {version!r}")

    return data


def _card_content(index: int, entry: Any) -> CardContent:
    if not isinstance(entry, dict):
        raise FormatError(f"Card #{index} is not an object")

    return CardContent(
        front_text=_text(index, entry, 'front_text'),
        back_text=_text(index, entry, 'back_text'),
        front_image=_image(index, entry, 'front_image'),
        back_image=_image(index, entry, 'back_image'),
    )


def _text(index: int, entry: dict, field: str) -> str:
    value = entry.get(field)
    if value is None:
        return ''
    if not isinstance(value, str):
        raise FormatError(f"Card #{index} {field} must be a string")
    return value


def _image(index: int, entry: dict, field: str) -> bytes | None:
    value = entry.get(field)
    if value is None or value == '':
        return None
    try:
        return decode_image(value)
    except FormatError as e:
        raise FormatError(f"Card #{index} {field}: {e}") from e
