"""
Corpus, Segmentation and Naming Tests
"""

import json

import pytest

from planner.contracts import CorpusFormatError, EmptyCorpusError, ErrorCode
from mining.corpus import StoryRecord, load_corpus, parse_corpus, sample_stories
from mining.naming import FALLBACK_NAME, name_archetype
from mining.segmentation import segment_story, split_sentences


def make_stories(n):
    return [StoryRecord(index=i, text=f"Story {i}.") for i in range(n)]


class TestParseCorpus:

    def test_json_array(self):
        stories = parse_corpus(json.dumps([{"text": "One."}, {"text": "Two.", "id": 7}]))
        assert [s.text for s in stories] == ["One.", "Two."]
        assert [s.index for s in stories] == [0, 1]

    def test_ndjson(self):
        raw = '{"text": "One."}\n\n{"text": "Two."}\n'
        assert [s.text for s in parse_corpus(raw)] == ["One.", "Two."]

    def test_single_object(self):
        assert len(parse_corpus('{"text": "Alone."}')) == 1

    def test_blank_texts_dropped(self):
        stories = parse_corpus(json.dumps([{"text": "  "}, {"text": "Kept."}]))
        assert [(s.index, s.text) for s in stories] == [(1, "Kept.")]

    def test_empty_input(self):
        with pytest.raises(EmptyCorpusError) as exc:
            parse_corpus("   ")
        assert exc.value.code is ErrorCode.EMPTY_CORPUS

    def test_only_blank_texts(self):
        with pytest.raises(EmptyCorpusError):
            parse_corpus(json.dumps([{"text": ""}, {"text": "\n"}]))

    def test_record_without_text(self):
        with pytest.raises(CorpusFormatError) as exc:
            parse_corpus(json.dumps([{"text": "Fine."}, {"body": "Wrong key."}]))
        assert exc.value.code is ErrorCode.BAD_CORPUS

    def test_non_string_text(self):
        with pytest.raises(CorpusFormatError):
            parse_corpus(json.dumps([{"text": 12}]))

    def test_wrong_top_level_shape(self):
        with pytest.raises(CorpusFormatError):
            parse_corpus(json.dumps("just a string"))

    def test_unparsable_input(self):
        with pytest.raises(CorpusFormatError):
            parse_corpus('{"text": "One."}\nnot json at all')

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(CorpusFormatError):
            load_corpus(tmp_path / "missing.json")

    def test_load_file(self, tmp_path):
        path = tmp_path / "stories.json"
        path.write_text(json.dumps([{"text": "Once upon a time."}]), encoding="utf-8")
        assert load_corpus(path)[0].text == "Once upon a time."


class TestSampling:

    def test_small_corpus_returned_whole(self):
        stories = make_stories(3)
        assert sample_stories(stories, 10, "random", seed=1) == tuple(stories)

    def test_sequential(self):
        assert [s.index for s in sample_stories(make_stories(10), 4)] == [0, 1, 2, 3]

    def test_strided(self):
        picked = sample_stories(make_stories(10), 5, "strided")
        assert [s.index for s in picked] == [0, 2, 4, 6, 8]

    def test_random_is_seeded_and_ordered(self):
        stories = make_stories(50)
        first = sample_stories(stories, 10, "random", seed=42)
        second = sample_stories(stories, 10, "random", seed=42)
        indexes = [s.index for s in first]

        assert first == second
        assert len(set(indexes)) == 10
        assert indexes == sorted(indexes)

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            sample_stories(make_stories(5), 2, "reservoir")


class TestSegmentation:

    def test_split_sentences(self):
        assert split_sentences("One. Two! Three?! tail") == ["One.", "Two!", "Three?!", "tail"]

    def test_no_terminal_punctuation(self):
        assert split_sentences("a story without an ending") == ["a story without an ending"]

    def test_even_chunks(self):
        text = "A. B. C. D. E. F."
        assert segment_story(text, 3) == ["A. B.", "C. D.", "E. F."]

    def test_uneven_chunks_pad_the_end(self):
        text = "A. B. C. D. E. F. G."
        assert segment_story(text, 3) == ["A. B. C.", "D. E. F.", "G."]

    def test_fewer_sentences_than_segments(self):
        assert segment_story("A. B.", 4) == ["A.", "B.", "", ""]

    def test_invalid_segment_count(self):
        with pytest.raises(ValueError):
            segment_story("A.", 0)


class TestNaming:

    @pytest.mark.parametrize("sequence, name", [
        (["Introduction", "Conflict", "Resolution"], "Slow Burn"),
        (["Introduction", "Conflict", "Climax"], "Cliffhanger"),
        (["Introduction", "Rising_Action", "Description", "Revelation"], "Twist Ending"),
        (["Conflict", "Conflict", "Dialogue", "Conflict", "Resolution"], "Conflict Gauntlet"),
        (["Introduction", "Dialogue", "Dialogue", "Description", "Resolution"], "Dialogue-Driven"),
        (["Introduction", "Rising_Action", "Climax", "Resolution"], "Classic Arc"),
        (["Inciting_Incident", "Description", "Dialogue", "Description", "Resolution"], "In Medias Res"),
    ])
    def test_rule_table(self, sequence, name):
        assert name_archetype(sequence) == name

    def test_fallback(self):
        sequence = ["Introduction", "Conflict", "Description", "Description", "Resolution"]
        assert name_archetype(sequence) == FALLBACK_NAME
        assert name_archetype([]) == FALLBACK_NAME
