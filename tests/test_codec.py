"""Tests for the AICF codec."""

import random

import pytest

from aiob.aicf.codec import ContextCodec, escape, split_escaped, unescape
from aiob.aicf.models import (
    AICF_VERSION,
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

TS = "2025-10-24T09:12:00+00:00"


def make_record(**overrides) -> MemoryRecord:
    fields = dict(
        timestamp=TS,
        conversation_id="abc123",
        user_intents=[UserIntent(TS, "Build a login page", "high")],
        ai_actions=[
            AIAction(TS, "claude", "Designed the architecture [120 tokens]"),
            AIAction(TS, "gpt", "Wrote the code [300 tokens]"),
        ],
        technical_work=[TechnicalWork(TS, "architecture", "Design the architecture")],
        decisions=[Decision(TS, "Used claude for architecture", "medium")],
        flow=ConversationFlow(turns=3, dominant_role="assistant", sequence=["user", "claude", "gpt"]),
        working_state=WorkingState("Build a login page", ["tests missing"], "review"),
    )
    fields.update(overrides)
    return MemoryRecord(**fields)


class TestEscaping:
    """Tests for leaf escaping."""

    def test_escape_pipe_and_newline(self):
        """Test that pipes and newlines are escaped."""
        assert escape("a|b\nc") == "a\\|b\\nc"

    def test_unescape_single_pass(self):
        """Test that an escaped backslash followed by n stays literal."""
        original = "path\\name"
        assert unescape(escape(original)) == original
        assert unescape("\\\\n") == "\\n"

    def test_unescape_dangling_backslash(self):
        """Test that a trailing lone backslash is rejected."""
        with pytest.raises(FormatError):
            unescape("oops\\")

    def test_split_respects_escapes(self):
        """Test splitting skips escaped separators."""
        assert split_escaped("a\\;b;c", ";") == ["a\\;b", "c"]
        assert split_escaped("", ";") == [""]


class TestEncode:
    """Tests for ContextCodec.encode."""

    @pytest.fixture
    def codec(self):
        return ContextCodec()

    def test_field_order(self, codec):
        """Test that fields are always emitted in the fixed order."""
        names = [line.split("|", 1)[0] for line in codec.encode(make_record()).split("\n")]
        assert names == [
            "version",
            "timestamp",
            "conversationId",
            "userIntents",
            "aiActions",
            "technicalWork",
            "decisions",
            "flow",
            "workingState",
        ]

    def test_escaped_value_in_field(self, codec):
        """Test that a value with a pipe and newline appears escaped."""
        record = make_record(user_intents=[UserIntent(TS, "a|b\nc", "high")])
        text = codec.encode(record)

        assert "a\\|b\\nc" in text
        assert len(text.split("\n")) == 9

    def test_empty_lists(self, codec):
        """Test that empty lists encode as empty strings."""
        record = MemoryRecord(timestamp=TS, conversation_id="x")
        lines = dict(line.split("|", 1) for line in codec.encode(record).split("\n"))

        assert lines["userIntents"] == ""
        assert lines["aiActions"] == ""
        assert lines["flow"] == "0|balanced|"
        assert lines["workingState"] == "||"
        assert lines["version"] == AICF_VERSION

    def test_list_entries(self, codec):
        """Test entry and subfield separators."""
        lines = dict(line.split("|", 1) for line in codec.encode(make_record()).split("\n"))
        assert lines["aiActions"] == (
            f"{TS}|claude|Designed the architecture [120 tokens];"
            f"{TS}|gpt|Wrote the code [300 tokens]"
        )
        assert lines["flow"] == "3|assistant|user,claude,gpt"
        assert lines["workingState"] == "Build a login page|tests missing|review"

    def test_rejects_invalid_role(self, codec):
        """Test that an unknown dominant role cannot be encoded."""
        with pytest.raises(FormatError):
            codec.encode(make_record(flow=ConversationFlow(1, "robot", ["user"])))

    def test_rejects_empty_csv_item(self, codec):
        """Test that an empty blocker cannot be encoded."""
        with pytest.raises(FormatError):
            codec.encode(make_record(working_state=WorkingState("t", [""], "n")))


class TestDecode:
    """Tests for ContextCodec.decode."""

    @pytest.fixture
    def codec(self):
        return ContextCodec()

    def test_round_trip(self, codec):
        """Test decode(encode(r)) == r."""
        record = make_record()
        assert codec.decode(codec.encode(record)) == record

    def test_round_trip_with_delimiters(self, codec):
        """Test round trip of text containing every delimiter."""
        nasty = "pipe | semi ; comma , newline \n cr \r backslash \\ escaped \\| end\\"
        record = make_record(
            conversation_id="id-1",
            user_intents=[UserIntent(TS, nasty, "low"), UserIntent(TS, "", "medium")],
            ai_actions=[AIAction(TS, "a|b", nasty)],
            technical_work=[TechnicalWork(TS, "x;y", nasty)],
            decisions=[Decision(nasty, nasty, "high")],
            flow=ConversationFlow(2, "balanced", ["user", nasty]),
            working_state=WorkingState(nasty, [nasty, "b,c"], nasty),
        )

        decoded = codec.decode(codec.encode(record))

        assert decoded == record
        assert decoded.ai_actions[0].details == nasty

    def test_order_independent(self, codec):
        """Test that line order does not matter."""
        record = make_record()
        lines = codec.encode(record).split("\n")
        assert codec.decode("\n".join(reversed(lines))) == record

    def test_decode_returns_fresh_record(self, codec):
        """Test that decoding builds tuples, not shared lists."""
        decoded = codec.decode(codec.encode(make_record()))
        assert isinstance(decoded.ai_actions, tuple)
        assert isinstance(decoded.flow.sequence, tuple)

    def test_missing_field(self, codec):
        """Test that a missing required field is a FormatError."""
        lines = [l for l in codec.encode(make_record()).split("\n") if not l.startswith("flow|")]
        with pytest.raises(FormatError) as exc_info:
            codec.decode("\n".join(lines))
        assert exc_info.value.field == "flow"

    def test_non_numeric_turns(self, codec):
        """Test that a non-numeric turn count is a FormatError."""
        text = codec.encode(make_record()).replace("flow|3|", "flow|three|")
        with pytest.raises(FormatError):
            codec.decode(text)

    def test_invalid_dominant_role(self, codec):
        """Test that an unknown dominant role is a FormatError."""
        text = codec.encode(make_record()).replace("|assistant|", "|system|")
        with pytest.raises(FormatError):
            codec.decode(text)

    def test_wrong_arity(self, codec):
        """Test that a tuple entry with too few subfields is a FormatError."""
        text = codec.encode(make_record(decisions=[])).replace("decisions|", "decisions|only|two")
        with pytest.raises(FormatError):
            codec.decode(text)

    def test_duplicate_field(self, codec):
        """Test that a repeated field is a FormatError."""
        text = codec.encode(make_record()) + "\nconversationId|other"
        with pytest.raises(FormatError):
            codec.decode(text)

    def test_unknown_field_ignored(self, codec):
        """Test that unknown fields are skipped."""
        record = make_record()
        assert codec.decode(codec.encode(record) + "\nextra|value") == record


class TestMultipleRecords:
    """Tests for blank-line separated record sequences."""

    def test_encode_decode_many(self):
        """Test that several records survive a round trip."""
        codec = ContextCodec()
        records = [make_record(), make_record(conversation_id="second", user_intents=[])]

        text = codec.encode_many(records)

        assert "\n\n" in text
        assert codec.decode_many(text) == records

    def test_decode_many_tolerates_crlf(self):
        """Test that Windows line endings are accepted."""
        codec = ContextCodec()
        record = make_record()
        text = codec.encode_many([record, record]).replace("\n", "\r\n")
        assert codec.decode_many(text) == [record, record]


# Every delimiter and escape character, plus plain and non-ASCII text.
ALPHABET = "ab Z09-|;,\\\n\r\té"


def random_text(rng: random.Random, min_len: int = 0) -> str:
    return "".join(rng.choice(ALPHABET) for _ in range(rng.randint(min_len, 12)))


def random_record(rng: random.Random) -> MemoryRecord:
    """Build a record that encode accepts, with arbitrary free text."""

    def texts(count, min_len=0):
        return [random_text(rng, min_len) for _ in range(count)]

    def some(factory):
        return [factory() for _ in range(rng.randint(0, 3))]

    return MemoryRecord(
        version=random_text(rng),
        timestamp=random_text(rng),
        conversation_id=random_text(rng),
        user_intents=some(lambda: UserIntent(*texts(2), rng.choice(LEVELS))),
        ai_actions=some(lambda: AIAction(*texts(3))),
        technical_work=some(lambda: TechnicalWork(*texts(3))),
        decisions=some(lambda: Decision(*texts(2), rng.choice(LEVELS))),
        flow=ConversationFlow(
            turns=rng.randint(0, 50),
            dominant_role=rng.choice(DOMINANT_ROLES),
            sequence=texts(rng.randint(0, 4), min_len=1),
        ),
        working_state=WorkingState(random_text(rng), texts(rng.randint(0, 3), min_len=1), random_text(rng)),
    )


class TestRandomRecords:
    """Round trips of generated records with delimiters in every free-text leaf."""

    @pytest.mark.parametrize("seed", range(25))
    def test_round_trip(self, seed):
        codec = ContextCodec()
        rng = random.Random(seed)

        for _ in range(20):
            record = random_record(rng)
            assert codec.decode(codec.encode(record)) == record

    @pytest.mark.parametrize("seed", range(5))
    def test_round_trip_many(self, seed):
        codec = ContextCodec()
        rng = random.Random(seed)
        records = [random_record(rng) for _ in range(rng.randint(1, 6))]

        assert codec.decode_many(codec.encode_many(records)) == records

    def test_generated_text_covers_delimiters(self):
        rng = random.Random(0)
        text = ContextCodec().encode_many([random_record(rng) for _ in range(50)])
        for char in "|;,\\":
            assert "\\" + char in text
        assert "\\n" in text and "\\r" in text
