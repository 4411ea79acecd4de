import asyncio

from config import Settings
from fakes import FakeEmbeddingProvider, FakeLanguageModel, make_pipeline
from llm import LanguageModelError
from models import Language
from pipeline import build_pipeline
from recorder import ConversationRecorder


def _translating_llm(prompt):
    if prompt.startswith("You are a query translator"):
        return "Where did Yiming study?"
    raise LanguageModelError("generation unavailable")


def test_english_question_with_model_offline(store, education_entry, failing_llm, offline_provider):
    pipeline = make_pipeline(store, failing_llm, offline_provider)
    result = asyncio.run(pipeline.handle("What university did Yiming study at?", "s1"))

    assert result.language == Language.EN
    assert result.search_query == "What university did Yiming study at?"
    assert "EIT Digital Master School" in result.response
    assert result.response.startswith("About Yiming's educational background")
    # 只有生成回复调用了模型，英文问题不翻译
    assert len(failing_llm.prompts) == 1


def test_chinese_question_searches_in_english(store, education_entry, offline_provider):
    llm = FakeLanguageModel(handler=_translating_llm)
    pipeline = make_pipeline(store, llm, offline_provider)

    searched = []
    search = pipeline.retriever.search

    async def recording_search(query, limit=6):
        searched.append(query)
        return await search(query, limit)

    pipeline.retriever.search = recording_search
    result = asyncio.run(pipeline.handle("一鸣在哪里读书？", "s1"))

    assert searched == ["Where did Yiming study?"]
    assert result.language == Language.ZH
    assert result.search_query == "Where did Yiming study?"
    assert result.response.startswith("关于李一鸣的教育背景：EIT Digital Master School")


def test_forced_english_skips_translation(store, education_entry, offline_provider):
    llm = FakeLanguageModel(handler=_translating_llm)
    pipeline = make_pipeline(store, llm, offline_provider)

    result = asyncio.run(pipeline.handle("一鸣在哪里读书？", force_language="en"))

    assert result.language == Language.EN
    assert result.search_query == "一鸣在哪里读书？"
    assert not any(p.startswith("You are a query translator") for p in llm.prompts)


def test_model_answer_is_returned(store, education_entry, offline_provider):
    llm = FakeLanguageModel(replies=["Yiming is studying at EIT Digital Master School."])
    result = asyncio.run(make_pipeline(store, llm, offline_provider).handle("Where did Yiming study?"))
    assert result.response == "Yiming is studying at EIT Digital Master School."


def test_result_payload(store, education_entry, failing_llm, offline_provider):
    for i in range(4):
        store.add_entry("education", f"Course {i}", "Study notes", priority=i)
    result = asyncio.run(make_pipeline(store, failing_llm, offline_provider).handle("What did Yiming study?"))
    payload = result.to_dict()

    assert len(payload["relevantSources"]) == 3
    assert payload["relevantSources"][0]["title"] == "Master's programme"
    assert payload["metadata"]["language"] == "en"
    assert payload["metadata"]["knowledgeItemsUsed"] == 5
    assert payload["metadata"]["processingTimeMs"] >= 0


def test_conversation_is_recorded(store, education_entry, failing_llm, offline_provider):
    recorder = ConversationRecorder(store)
    pipeline = make_pipeline(store, failing_llm, offline_provider, recorder=recorder)

    result = asyncio.run(pipeline.handle("Where did Yiming study?", "visitor-1"))
    recorder.shutdown(wait=True)

    messages = store.get_recent_messages("visitor-1")
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[1]["content"] == result.response


def test_build_pipeline_without_api_key(tmp_path, store, education_entry):
    settings = Settings(api_key=None, database_path=str(tmp_path / "unused.db"))
    pipeline = build_pipeline(settings, store, None, None)

    result = asyncio.run(pipeline.handle("What university did Yiming study at?"))

    assert "EIT Digital Master School" in result.response
    assert store.count_cached_embeddings() == 0


def test_build_pipeline_translator_follows_settings(store):
    assert build_pipeline(Settings(translate_queries=False), store, None, None).translator is None
    translator = build_pipeline(Settings(top_k=None), store, None, None).translator
    assert translator.top_k is None
    assert build_pipeline(Settings(), store, None, None).translator.top_k == 20


def test_embeddings_generated_lazily_during_search(store, education_entry, failing_llm):
    provider = FakeEmbeddingProvider(default=[1.0, 0.0])
    asyncio.run(make_pipeline(store, failing_llm, provider).handle("Where did Yiming study?"))
    assert store.entries_missing_embeddings() == []


def test_recorder_failure_does_not_affect_reply(store, education_entry, failing_llm, offline_provider):
    recorder = ConversationRecorder(store)
    recorder.shutdown(wait=True)
    pipeline = make_pipeline(store, failing_llm, offline_provider, recorder=recorder)

    result = asyncio.run(pipeline.handle("Where did Yiming study?", "visitor-1"))

    assert "EIT Digital Master School" in result.response
    assert store.get_recent_messages("visitor-1") == []
