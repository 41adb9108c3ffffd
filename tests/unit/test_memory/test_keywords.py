"""Tests for keyword, person and project extraction."""

from triage.memory.keywords import detect_people, detect_projects, extract_keywords


class TestExtractKeywords:
    def test_latin_tokens(self):
        """Test tokens split on non-alphanumeric boundaries."""
        assert extract_keywords("Buy milk, at the store!") == [
            "Buy",
            "milk",
            "at",
            "the",
            "store",
        ]

    def test_length_bounds(self):
        """Test single characters and tokens over 8 characters are dropped."""
        assert extract_keywords("a cd internationalization") == ["cd"]

    def test_cjk_runs_follow_generic_tokens(self):
        """Test CJK runs are appended after the generic tokens."""
        assert extract_keywords("明天下午3点开会") == ["明天下午3点开会", "明天下午", "点开会"]

    def test_deduplicated(self):
        """Test repeated keywords are kept once, in first-seen order."""
        assert extract_keywords("会议 会议") == ["会议"]

    def test_capped_at_eight_with_generic_first(self):
        """Test five generic tokens win over later CJK runs under the cap."""
        text = "aa bb cc dd ee ff gg 中文 汉字 你好 世界 再见"
        assert extract_keywords(text) == [
            "aa",
            "bb",
            "cc",
            "dd",
            "ee",
            "中文",
            "汉字",
            "你好",
        ]

    def test_empty(self):
        assert extract_keywords("") == []


class TestDetectPeople:
    def test_honorific(self):
        assert detect_people("王先生明天来") == ["王先生"]

    def test_handle(self):
        assert detect_people("ping @alice about it") == ["@alice"]

    def test_nothing(self):
        assert detect_people("buy milk") == []


class TestDetectProjects:
    def test_suffix(self):
        assert detect_projects("支付系统上线") == ["支付系统"]

    def test_brackets_stripped(self):
        assert detect_projects("[Apollo] kickoff") == ["Apollo"]
