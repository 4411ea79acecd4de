from models import CATEGORY_PROFILES, Category, KnowledgeEntry, Scores, SearchResult


def _entry(**kwargs):
    defaults = dict(id=1, category=Category.SKILLS, title="Python", content="Writes Python", priority=5)
    defaults.update(kwargs)
    return KnowledgeEntry(**defaults)


def test_every_category_has_profile():
    assert set(CATEGORY_PROFILES) == set(Category)
    for profile in CATEGORY_PROFILES.values():
        assert profile.en_keywords
        assert profile.zh_keywords
        assert "{name}" in profile.en_phrase
        assert "{name}" in profile.zh_phrase


def test_keywords_are_lowercase():
    for profile in CATEGORY_PROFILES.values():
        assert all(k == k.lower() for k in profile.en_keywords)


def test_score_prefers_combined():
    result = SearchResult(_entry(), Scores(keyword=1.7, vector=0.9, combined=1.22))
    assert result.score == 1.22


def test_score_falls_back_to_single_channel():
    assert SearchResult(_entry(), Scores(keyword=0.67)).score == 0.67
    assert SearchResult(_entry(), Scores(vector=0.5)).score == 0.5
    assert SearchResult(_entry()).score == 0.0


def test_to_source_rounds_confidence():
    source = SearchResult(_entry(), Scores(keyword=0.67), "content_search").to_source()
    assert source == {
        "category": "skills",
        "title": "Python",
        "confidence": 67,
        "source": "content_search",
    }


def test_embedding_text_joins_title_and_content():
    assert _entry().embedding_text == "Python: Writes Python"
