"""
Tests for phrasing domain logic.

These tests verify pure functional domain logic without external dependencies.
All functions are tested in isolation with deterministic inputs and outputs.
"""

from streamcue.domains.phrasing import (
    PhrasingOptions,
    apply_dictionary,
    build_utterance,
    clean_name,
    clean_text,
    phrase,
    prosody_for,
    remove_ranges,
    replace_tags,
    should_name_speaker,
    wrap_ssml,
)
from streamcue.speech.models import SpeechKind


class TestTags:
    """Tests for template tag replacement."""

    def test_replace_tags(self):
        """Test every known tag is replaced."""
        result = replace_tags("%userName said: %userInput", {"userName": "Alice", "userInput": "hi"})
        assert result == "Alice said: hi"

    def test_longer_tags_replaced_first(self):
        """Test a tag that prefixes another does not clobber it."""
        result = replace_tags("%userBitsTotal/%userBits", {"userBits": "5", "userBitsTotal": "500"})
        assert result == "500/5"

    def test_unknown_tags_left_alone(self):
        """Test unknown placeholders pass through."""
        assert replace_tags("%unknown tag", {"userName": "Alice"}) == "%unknown tag"


class TestCleaning:
    """Tests for text and name cleaning."""

    def test_collapses_whitespace(self):
        """Test runs of whitespace become single spaces."""
        assert clean_text("  hello \n\t world  ") == "hello world"

    def test_remove_ranges_inclusive(self):
        """Test emote ranges are cut out including their end position."""
        assert remove_ranges("hi Kappa there", [(3, 7)]) == "hi  there"
        assert clean_text("hi Kappa there", clear_ranges=[(3, 7)]) == "hi there"

    def test_remove_multiple_ranges(self):
        """Test several ranges are removed without shifting each other."""
        text = "LUL hi LUL"
        assert clean_text(text, clear_ranges=[(0, 2), (7, 9)]) == "hi"

    def test_out_of_bounds_ranges_ignored(self):
        """Test ranges past the end of the text are skipped."""
        assert remove_ranges("short", [(3, 50)]) == "short"

    def test_cheer_emotes_removed_only_when_asked(self):
        """Test bit emotes are stripped for cheers only."""
        text = "Cheer100 great stream cheer50 Kappa10 keep going"
        assert clean_text(text, remove_cheer_emotes=True) == "great stream keep going"
        assert clean_text(text) == text

    def test_cheer_words_inside_text_kept(self):
        """Test words that merely start like an emote survive."""
        assert clean_text("cheers everyone", remove_cheer_emotes=True) == "cheers everyone"

    def test_clean_name(self):
        """Test underscores become spaces and trailing digits go."""
        assert clean_name("the_real_bob42") == "the real bob"
        assert clean_name("alice") == "alice"

    def test_clean_name_falls_back(self):
        """Test a name made only of digits is kept as-is."""
        assert clean_name("12345") == "12345"


class TestDictionary:
    """Tests for dictionary substitution."""

    def test_whole_word_case_insensitive(self):
        """Test whole words match regardless of case."""
        result = apply_dictionary("GG everyone, eggs for gg", {"gg": "good game"})
        assert result == "good game everyone, eggs for good game"

    def test_empty_dictionary(self):
        """Test no dictionary leaves text unchanged."""
        assert apply_dictionary("unchanged", {}) == "unchanged"


class TestSpeakerNaming:
    """Tests for deciding whether to say who spoke."""

    def test_new_speaker_is_named(self):
        """Test a different speaker is named."""
        assert should_name_speaker("alice", "bob", 100, 5000) is True

    def test_same_speaker_within_timeout_not_named(self):
        """Test the same speaker inside the timeout is not named again."""
        assert should_name_speaker("alice", "alice", 100, 5000) is False

    def test_same_speaker_after_timeout_is_named(self):
        """Test the speaker is forgotten after the timeout."""
        assert should_name_speaker("alice", "alice", 6000, 5000) is True

    def test_skip_said(self):
        """Test skip_said never names anyone."""
        assert should_name_speaker("", "bob", 0, 5000, skip_said=True) is False


class TestUtterances:
    """Tests for kind-specific phrasing."""

    def test_said(self):
        """Test chat speech uses the said template."""
        assert build_utterance(SpeechKind.SAID, "hi", "alice") == "alice said: hi"
        assert build_utterance(SpeechKind.SAID, "hi", "alice", name_speaker=False) == "hi"

    def test_custom_said_template(self):
        """Test the said template is configurable."""
        result = build_utterance(SpeechKind.SAID, "hi", "alice", said_template="%userName: %userInput")
        assert result == "alice: hi"

    def test_action(self):
        """Test actions read as a sentence about the speaker."""
        assert build_utterance(SpeechKind.ACTION, "waves", "alice") == "alice waves"

    def test_cheer_pluralizes_bits(self):
        """Test one bit is singular, more are plural."""
        assert build_utterance(SpeechKind.CHEER, "yay", "alice", bits=1) == "alice cheered 1 bit: yay"
        assert build_utterance(SpeechKind.CHEER, "yay", "alice", bits=100) == "alice cheered 100 bits: yay"

    def test_announcement_is_verbatim(self):
        """Test announcements are spoken as-is."""
        assert build_utterance(SpeechKind.ANNOUNCEMENT, "Stream starting", "bot") == "Stream starting"

    def test_wrap_ssml(self):
        """Test SSML wrapping is idempotent."""
        assert wrap_ssml("hi") == "<speak>hi</speak>"
        assert wrap_ssml("<speak>hi</speak>") == "<speak>hi</speak>"


class TestProsody:
    """Tests for length-based prosody."""

    def test_center_length_is_neutral(self):
        """Test a 150 character phrase keeps default rate and pitch."""
        assert prosody_for("x" * 150) == (1.0, 0.0)

    def test_longer_is_faster_and_higher(self):
        """Test a 650 character phrase is one full step up."""
        rate, pitch = prosody_for("x" * 650)
        assert rate == 1.25
        assert pitch == 1.0

    def test_shorter_is_slower_and_lower(self):
        """Test short phrases slow down."""
        rate, pitch = prosody_for("")
        assert rate < 1.0
        assert pitch == -0.3

    def test_rate_override(self):
        """Test a configured rate wins over the computed one."""
        rate, pitch = prosody_for("x" * 650, speaking_rate_override=1.1)
        assert rate == 1.1
        assert pitch == 1.0


class TestPhrase:
    """Tests for the whole phrasing chain."""

    def test_full_chain(self):
        """Test cleaning, dictionary and template together."""
        options = PhrasingOptions(dictionary={"gg": "good game"})
        assert phrase(SpeechKind.SAID, " gg  all ", "cool_cat7", options) == "cool cat said: good game all"

    def test_announcements_skip_dictionary(self):
        """Test announcements skip the dictionary when configured."""
        options = PhrasingOptions(dictionary={"gg": "good game"})
        assert phrase(SpeechKind.ANNOUNCEMENT, "gg", "bot", options) == "gg"

        options.skip_dictionary_for_announcements = False
        assert phrase(SpeechKind.ANNOUNCEMENT, "gg", "bot", options) == "good game"

    def test_skip_dictionary_flag(self):
        """Test a request can opt out of the dictionary."""
        options = PhrasingOptions(dictionary={"gg": "good game"})
        assert phrase(SpeechKind.ACTION, "says gg", "alice", options, skip_dictionary=True) == "alice says gg"

    def test_cheer_chain(self):
        """Test cheers strip emotes and mention bits."""
        result = phrase(SpeechKind.CHEER, "Cheer500 hype", "alice", PhrasingOptions(), bits=500)
        assert result == "alice cheered 500 bits: hype"

    def test_empty_after_cleaning(self):
        """Test nothing speakable yields an empty phrase."""
        assert phrase(SpeechKind.SAID, "   ", "alice", PhrasingOptions()) == ""

    def test_ssml_wrapping(self):
        """Test the whole phrase is wrapped when SSML is on."""
        options = PhrasingOptions(wrap_ssml=True)
        assert phrase(SpeechKind.ACTION, "waves", "alice", options) == "<speak>alice waves</speak>"
