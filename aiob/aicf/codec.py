"""
AIOB Context Codec - AICF text encoding and decoding.

An AICF record is a block of ``fieldName|fieldValue`` lines:

    version|3.0.0-alpha
    timestamp|2025-10-24T09:12:00+00:00
    conversationId|abc123
    userIntents|<ts>|<intent>|<confidence>;...
    aiActions|<ts>|<type>|<details>;...
    technicalWork|<ts>|<type>|<work>;...
    decisions|<ts>|<decision>|<impact>;...
    flow|<turns>|<dominantRole>|<label>,<label>,...
    workingState|<currentTask>|<blocker>,<blocker>,...|<nextAction>

Free-text leaves are escaped so that any delimiter they contain survives
a round trip. Several records in one file are separated by a blank line.
"""

import logging
import re
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from aiob.aicf.models import (
    DOMINANT_ROLES,
    LEVELS,
    AIAction,
    ConversationFlow,
    Decision,
    MemoryRecord,
    TechnicalWork,
    UserIntent,
    WorkingState,
)
from aiob.errors import FormatError

logger = logging.getLogger(__name__)

FIELD_SEP = "|"
RECORD_SEP = "\n"
ENTRY_SEP = ";"
ITEM_SEP = ","

# Wire name -> MemoryRecord attribute, in emission order.
FIELD_ORDER: Tuple[Tuple[str, str], ...] = (
    ("version", "version"),
    ("timestamp", "timestamp"),
    ("conversationId", "conversation_id"),
    ("userIntents", "user_intents"),
    ("aiActions", "ai_actions"),
    ("technicalWork", "technical_work"),
    ("decisions", "decisions"),
    ("flow", "flow"),
    ("workingState", "working_state"),
)

_ESCAPES = str.maketrans(
    {
        "\\": "\\\\",
        "\n": "\\n",
        "\r": "\\r",
        "|": "\\|",
        ";": "\\;",
        ",": "\\,",
    }
)
_UNESCAPE_RE = re.compile(r"\\(.)|\\\Z", re.DOTALL)
_CONTROL = {"n": "\n", "r": "\r"}
_NUMBER_RE = re.compile(r"[0-9]+")
_BLANK_LINE_RE = re.compile(r"\n[ \t\r]*\n")


def escape(text: str) -> str:
    """Escape a free-text leaf for insertion into a field."""
    return text.translate(_ESCAPES)


def unescape(text: str) -> str:
    """
    Reverse ``escape`` in a single pass.

    Raises:
        FormatError: If the text ends in a dangling backslash.
    """

    def _replace(match: "re.Match[str]") -> str:
        char = match.group(1)
        if char is None:
            raise FormatError(f"Dangling escape at end of value: {text!r}")
        return _CONTROL.get(char, char)

    return _UNESCAPE_RE.sub(_replace, text)


def split_escaped(text: str, sep: str) -> List[str]:
    """Split on ``sep`` wherever it is not escaped. Pieces stay escaped."""
    parts: List[str] = []
    current: List[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if char == "\\":
            current.append(text[i : i + 2])
            i += 2
            continue
        if char == sep:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    parts.append("".join(current))
    return parts


class ContextCodec:
    """
    Encoder/decoder for AICF memory records.

    ``decode(encode(record)) == record`` holds for every record whose
    enumerated values are valid and whose CSV lists contain no empty
    strings; ``encode`` rejects anything else with ``FormatError``.

    Example:
        >>> codec = ContextCodec()
        >>> text = codec.encode(record)
        >>> codec.decode(text) == record
        True
    """

    # ── Encoding ──────────────────────────────────────────────────────────

    def encode(self, record: MemoryRecord) -> str:
        """Encode one record as AICF text (no trailing newline)."""
        values = {
            "version": escape(record.version),
            "timestamp": escape(record.timestamp),
            "conversationId": escape(record.conversation_id),
            "userIntents": self._encode_entries(
                record.user_intents,
                lambda i: (i.timestamp, i.intent, self._check_level(i.confidence, "userIntents")),
            ),
            "aiActions": self._encode_entries(
                record.ai_actions, lambda a: (a.timestamp, a.type, a.details)
            ),
            "technicalWork": self._encode_entries(
                record.technical_work, lambda w: (w.timestamp, w.type, w.work)
            ),
            "decisions": self._encode_entries(
                record.decisions,
                lambda d: (d.timestamp, d.decision, self._check_level(d.impact, "decisions")),
            ),
            "flow": self._encode_flow(record.flow),
            "workingState": self._encode_working_state(record.working_state),
        }
        return RECORD_SEP.join(f"{name}{FIELD_SEP}{values[name]}" for name, _ in FIELD_ORDER)

    def encode_many(self, records: Iterable[MemoryRecord]) -> str:
        """Encode several records separated by a blank line."""
        return (RECORD_SEP * 2).join(self.encode(r) for r in records)

    def _encode_entries(self, entries: Sequence, fields: Callable[[object], Tuple[str, ...]]) -> str:
        return ENTRY_SEP.join(
            FIELD_SEP.join(escape(value) for value in fields(entry)) for entry in entries
        )

    def _encode_csv(self, items: Sequence[str], field: str) -> str:
        if any(item == "" for item in items):
            raise FormatError(f"Empty list element cannot be encoded in {field}", field=field)
        return ITEM_SEP.join(escape(item) for item in items)

    def _encode_flow(self, flow: ConversationFlow) -> str:
        if flow.turns < 0:
            raise FormatError(f"Negative turn count: {flow.turns}", field="flow")
        if flow.dominant_role not in DOMINANT_ROLES:
            raise FormatError(f"Invalid dominant role: {flow.dominant_role!r}", field="flow")
        sequence = self._encode_csv(flow.sequence, "flow")
        return FIELD_SEP.join((str(flow.turns), flow.dominant_role, sequence))

    def _encode_working_state(self, state: WorkingState) -> str:
        return FIELD_SEP.join(
            (
                escape(state.current_task),
                self._encode_csv(state.blockers, "workingState"),
                escape(state.next_action),
            )
        )

    @staticmethod
    def _check_level(value: str, field: str) -> str:
        if value not in LEVELS:
            raise FormatError(f"Invalid level {value!r} in {field}", field=field)
        return value

    # ── Decoding ──────────────────────────────────────────────────────────

    def decode(self, text: str) -> MemoryRecord:
        """
        Decode one AICF record.

        Args:
            text: The record text. Line order does not matter.

        Returns:
            A fresh MemoryRecord.

        Raises:
            FormatError: If the text is malformed.
        """
        raw: Dict[str, str] = {}
        for line in text.split(RECORD_SEP):
            line = line.rstrip("\r")
            if not line.strip():
                continue
            name, sep, value = line.partition(FIELD_SEP)
            if not sep:
                raise FormatError(f"Line has no field separator: {line[:40]!r}")
            if name in raw:
                raise FormatError(f"Duplicate field: {name}", field=name)
            raw[name] = value

        known = {name for name, _ in FIELD_ORDER}
        for name in raw:
            if name not in known:
                logger.debug("Ignoring unknown AICF field %s", name)
        for name, _ in FIELD_ORDER:
            if name not in raw:
                raise FormatError(f"Missing required field: {name}", field=name)

        return MemoryRecord(
            version=unescape(raw["version"]),
            timestamp=unescape(raw["timestamp"]),
            conversation_id=unescape(raw["conversationId"]),
            user_intents=[
                UserIntent(ts, intent, self._check_level(conf, "userIntents"))
                for ts, intent, conf in self._decode_entries(raw["userIntents"], "userIntents")
            ],
            ai_actions=[
                AIAction(*entry) for entry in self._decode_entries(raw["aiActions"], "aiActions")
            ],
            technical_work=[
                TechnicalWork(*entry)
                for entry in self._decode_entries(raw["technicalWork"], "technicalWork")
            ],
            decisions=[
                Decision(ts, decision, self._check_level(impact, "decisions"))
                for ts, decision, impact in self._decode_entries(raw["decisions"], "decisions")
            ],
            flow=self._decode_flow(raw["flow"]),
            working_state=self._decode_working_state(raw["workingState"]),
        )

    def decode_many(self, text: str) -> List[MemoryRecord]:
        """Decode a blank-line separated sequence of records."""
        return [
            self.decode(block)
            for block in _BLANK_LINE_RE.split(text.replace("\r\n", "\n"))
            if block.strip()
        ]

    def _decode_entries(self, value: str, field: str, arity: int = 3) -> List[Tuple[str, ...]]:
        if value == "":
            return []
        entries = []
        for entry in split_escaped(value, ENTRY_SEP):
            parts = split_escaped(entry, FIELD_SEP)
            if len(parts) != arity:
                raise FormatError(
                    f"{field} entry has {len(parts)} subfields, expected {arity}", field=field
                )
            entries.append(tuple(unescape(p) for p in parts))
        return entries

    def _decode_csv(self, value: str) -> List[str]:
        if value == "":
            return []
        return [unescape(item) for item in split_escaped(value, ITEM_SEP)]

    def _decode_flow(self, value: str) -> ConversationFlow:
        parts = split_escaped(value, FIELD_SEP)
        if len(parts) != 3:
            raise FormatError(f"flow has {len(parts)} subfields, expected 3", field="flow")
        turns, role, sequence = parts
        if not _NUMBER_RE.fullmatch(turns):
            raise FormatError(f"Non-numeric turn count: {turns!r}", field="flow")
        if role not in DOMINANT_ROLES:
            raise FormatError(f"Invalid dominant role: {role!r}", field="flow")
        return ConversationFlow(
            turns=int(turns), dominant_role=role, sequence=self._decode_csv(sequence)
        )

    def _decode_working_state(self, value: str) -> WorkingState:
        parts = split_escaped(value, FIELD_SEP)
        if len(parts) != 3:
            raise FormatError(
                f"workingState has {len(parts)} subfields, expected 3", field="workingState"
            )
        current_task, blockers, next_action = parts
        return WorkingState(
            current_task=unescape(current_task),
            blockers=self._decode_csv(blockers),
            next_action=unescape(next_action),
        )
