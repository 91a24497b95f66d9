from __future__ import annotations

import json
import logging

from sqlalchemy.types import Text, TypeDecorator

logger = logging.getLogger(__name__)


class JSONText(TypeDecorator):
    """
    Structured value stored as serialized text.

    The Local Store keeps nested data (sale line items, wholesaler product
    lists, audit details) in TEXT columns. Encoding happens on bind and
    decoding on load, so rows always surface lists/dicts, never raw JSON.
    Unreadable text decodes to an empty value of the declared shape.
    """
    impl = Text
    cache_ok = True

    def __init__(self, empty: type = list, **kwargs):
        super().__init__(**kwargs)
        self.empty = empty

    def process_bind_param(self, value, dialect):
        if value is None:
            return json.dumps(self.empty())
        return json.dumps(value, default=str, ensure_ascii=False)

    def process_result_value(self, value, dialect):
        if value is None or value == "":
            return self.empty()
        try:
            decoded = json.loads(value)
        except ValueError:
            logger.warning("Discarding unreadable JSON column value: %.80r", value)
            return self.empty()
        if not isinstance(decoded, self.empty):
            logger.warning("JSON column held %s, expected %s", type(decoded).__name__, self.empty.__name__)
            return self.empty()
        return decoded
