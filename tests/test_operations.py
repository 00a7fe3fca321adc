"""Tests for the operation registry and its handlers."""
import importlib
import sqlite3
from pathlib import Path

import pytest

from ragchain import config
from ragchain.operations import OperationContext, build_registry

from tests.conftest import FailingChatModel, RecordingChatModel

SKY_QUESTION = "What color is the sky?"


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def run(registry, operation_context):
    """Execute an operation against the shared test context."""
    def _run(name, **args):
        return registry.execute(name, args, operation_context)
    return _run


@pytest.fixture
def filled_store_path(run, store_path, docs_dir):
    assert run("create-store", store_name=str(store_path)).success
    assert run(
        "add-folder-to-store",
        store_name=str(store_path),
        folder_path=str(docs_dir),
        source_kind="text",
    ).success
    return store_path


def test_registry_lists_every_operation(registry):
    assert [op.name for op in registry.list_operations()] == [
        "answer-prompt",
        "define-prompt-template",
        "sentiment-analyzer",
        "load-document-and-answer",
        "chat-with-memory",
        "create-store",
        "add-document-to-store",
        "add-folder-to-store",
        "query-store",
        "answer-from-store",
    ]


def test_unknown_operation(run):
    result = run("delete-everything")

    assert not result.success
    assert result.error_kind == "unknown_operation"
    assert result.to_dict() == {
        "success": False,
        "error_kind": "unknown_operation",
        "error": "Operation 'delete-everything' not found",
    }


def test_invalid_input_is_a_configuration_error(run, store_path):
    """Missing or out-of-range fields never reach the handler."""
    assert run("query-store", store_name=str(store_path)).error_kind == "configuration_error"
    assert (
        run("chat-with-memory", message="hi", memory_id="a", max_messages=0).error_kind
        == "configuration_error"
    )


def test_create_store(run, store_path):
    result = run("create-store", store_name=str(store_path))

    assert result.success
    assert result.data == {"store_name": str(store_path), "status": "created"}
    assert store_path.is_file()


def test_create_store_in_missing_directory(run, tmp_path):
    result = run("create-store", store_name=str(tmp_path / "nope" / "x.store"))

    assert result.error_kind == "not_found"


def test_add_folder_to_store(filled_store_path, run, docs_dir):
    result = run(
        "add-folder-to-store",
        store_name=str(filled_store_path),
        folder_path=str(docs_dir),
        source_kind="TEXT",
    )

    assert result.success
    assert result.data["files_found"] == 4
    assert result.data["files_ingested"] == 3
    assert result.data["files_skipped"] == 1
    assert result.data["segments_added"] == 3
    assert result.data["status"] == "updated"


def test_add_folder_rejects_url_kind(run, store_path, docs_dir):
    run("create-store", store_name=str(store_path))

    result = run(
        "add-folder-to-store",
        store_name=str(store_path),
        folder_path=str(docs_dir),
        source_kind="url",
    )

    assert result.error_kind == "unsupported_source_kind"


def test_add_document_to_store(run, store_path, tmp_path):
    run("create-store", store_name=str(store_path))
    source = tmp_path / "moon.txt"
    source.write_text("The moon orbits the earth.")

    result = run(
        "add-document-to-store",
        store_name=str(store_path),
        source=str(source),
        source_kind="text",
    )

    assert result.success
    assert result.data["segments_added"] == 1
    assert result.data["source_kind"] == "text"


def test_unsupported_source_kind(run, store_path, tmp_path):
    run("create-store", store_name=str(store_path))
    source = tmp_path / "report.docx"
    source.write_text("not really a docx")

    result = run(
        "add-document-to-store",
        store_name=str(store_path),
        source=str(source),
        source_kind="docx",
    )

    assert result.error_kind == "unsupported_source_kind"


def test_add_document_to_missing_store(run, tmp_path):
    source = tmp_path / "moon.txt"
    source.write_text("The moon orbits the earth.")

    result = run(
        "add-document-to-store",
        store_name=str(tmp_path / "missing.store"),
        source=str(source),
        source_kind="text",
    )

    assert result.error_kind == "not_found"


def test_query_store(filled_store_path, run):
    result = run(
        "query-store", store_name=str(filled_store_path), question=SKY_QUESTION, min_score=0.5
    )

    assert result.success
    assert result.data["min_score"] == 0.5
    assert result.data["information"] == "The sky is blue. Clouds drift across the sky."
    assert [s["file_name"] for s in result.data["sources"]] == ["sky.txt"]


def test_query_store_zero_min_score_means_default(filled_store_path, run):
    result = run("query-store", store_name=str(filled_store_path), question=SKY_QUESTION)

    assert result.data["min_score"] == 0.7
    assert result.data["max_results"] == 3


def test_query_store_sees_documents_added_later(filled_store_path, run, tmp_path):
    """Writes through the registry invalidate the cached store."""
    query = dict(
        store_name=str(filled_store_path),
        question="Where does the moon go?",
        min_score=0.3,
        get_latest=False,
    )
    assert run("query-store", **query).data["sources"] == []

    source = tmp_path / "moon.txt"
    source.write_text("The moon goes around the earth.")
    run(
        "add-document-to-store",
        store_name=str(filled_store_path),
        source=str(source),
        source_kind="text",
    )

    [found] = run("query-store", **query).data["sources"]
    assert found["file_name"] == "moon.txt"


def test_query_missing_store(run, tmp_path):
    result = run("query-store", store_name=str(tmp_path / "missing.store"), question="hi")

    assert result.error_kind == "not_found"


def test_answer_from_store(filled_store_path, run, chat_model):
    result = run(
        "answer-from-store",
        store_name=str(filled_store_path),
        question=SKY_QUESTION,
        min_score=0.5,
    )

    assert result.success
    assert result.data["response"] == "reply 1"
    assert result.data["token_usage"]["total_tokens"] == 18
    assert [s["file_name"] for s in result.data["sources"]] == ["sky.txt"]
    assert "Clouds drift across the sky." in chat_model.calls[0]["prompt"]


def test_answer_from_store_backend_failure(filled_store_path, registry, embedding_model):
    ctx = OperationContext(
        embedding_model=embedding_model,
        chat_model=FailingChatModel(),
        length_function=len,
    )

    result = registry.execute(
        "answer-from-store",
        {"store_name": str(filled_store_path), "question": SKY_QUESTION},
        ctx,
    )

    assert result.error_kind == "backend_failure"


def test_load_document_and_answer(run, tmp_path, chat_model):
    source = tmp_path / "nature.txt"
    source.write_text("The sky is blue. The grass is green.")

    result = run(
        "load-document-and-answer",
        question=SKY_QUESTION,
        source=str(source),
        source_kind="text",
        min_score=-1.0,
    )

    assert result.success
    assert result.data["response"] == "reply 1"
    [found] = result.data["sources"]
    assert found["file_name"] == "nature.txt"
    assert found["text"] == "The sky is blue. The grass is green."
    assert chat_model.calls[0]["prompt"].startswith(SKY_QUESTION)


def test_load_blank_document(run, tmp_path):
    source = tmp_path / "empty.txt"
    source.write_text("   ")

    result = run(
        "load-document-and-answer", question="Anything?", source=str(source), source_kind="text"
    )

    assert result.error_kind == "blank_input"


def test_chat_with_memory(run, tmp_path, chat_model):
    db = str(tmp_path / "memory.db")

    first = run("chat-with-memory", message="Hi, I am Ada", memory_id="ada", db_file_path=db)
    second = run("chat-with-memory", message="Who am I?", memory_id="ada", db_file_path=db)

    assert first.success and second.success
    assert second.data["response"] == "reply 2"
    assert second.data["message_count"] == 4
    assert [m.text for m in chat_model.calls[1]["prior_messages"]] == ["Hi, I am Ada", "reply 1"]


def test_chat_with_memory_missing_directory(run, tmp_path):
    result = run(
        "chat-with-memory",
        message="hi",
        memory_id="ada",
        db_file_path=str(tmp_path / "nope" / "memory.db"),
    )

    assert result.error_kind == "not_found"


def test_chat_with_corrupt_memory(run, tmp_path, chat_model):
    db = tmp_path / "memory.db"
    assert run("chat-with-memory", message="Hi", memory_id="ada", db_file_path=str(db)).success
    conn = sqlite3.connect(db)
    try:
        conn.execute("UPDATE chat_memory SET messages_json = ? WHERE memory_id = ?", ("[{", "ada"))
        conn.commit()
    finally:
        conn.close()

    result = run("chat-with-memory", message="Again", memory_id="ada", db_file_path=str(db))

    assert result.error_kind == "corrupt_memory"
    assert len(chat_model.calls) == 1


def test_chat_with_memory_default_database(run, tmp_path, monkeypatch):
    monkeypatch.setattr(config, "MEMORY_DB_PATH", tmp_path / "default.db")

    result = run("chat-with-memory", message="Hi", memory_id="ada")

    assert result.success
    assert result.data["db_file_path"] == str(tmp_path / "default.db")
    assert (tmp_path / "default.db").is_file()


def test_default_memory_database_is_under_the_working_directory(monkeypatch):
    monkeypatch.delenv("RAGCHAIN_DATA_DIR", raising=False)
    monkeypatch.delenv("MEMORY_DB_PATH", raising=False)
    try:
        importlib.reload(config)
        assert config.MEMORY_DB_PATH.parent.is_dir()
        assert config.MEMORY_DB_PATH.parent.resolve() == Path.cwd().resolve()
    finally:
        monkeypatch.undo()
        importlib.reload(config)


def test_answer_prompt(run, chat_model):
    result = run("answer-prompt", prompt="Capital of France?")

    assert result.success
    assert result.data == {
        "response": "reply 1",
        "token_usage": {"prompt_tokens": 11, "completion_tokens": 7, "total_tokens": 18},
    }
    assert chat_model.calls[0]["prompt"] == "Capital of France?"


def test_define_prompt_template(run, chat_model):
    result = run(
        "define-prompt-template",
        template="You are a data analyst.",
        instructions="Count the rows",
        dataset="a\nb",
    )

    assert result.success
    assert result.data["prompt"] == (
        "You are a data analyst.\nInstructions: Count the rows\nDataset: a\nb"
    )
    assert chat_model.calls[0]["prompt"] == result.data["prompt"]


def test_define_prompt_template_unknown_variable(run):
    result = run("define-prompt-template", template="Hi {{who}}", instructions="greet")

    assert result.error_kind == "configuration_error"


def test_sentiment_analyzer(registry, embedding_model):
    ctx = OperationContext(
        embedding_model=embedding_model,
        chat_model=RecordingChatModel(replies=["NEGATIVE"]),
    )

    result = registry.execute("sentiment-analyzer", {"data": "This is awful"}, ctx)

    assert result.success
    assert result.data == {"sentiment": "NEGATIVE"}


def test_sentiment_analyzer_unrecognised_reply(run):
    assert run("sentiment-analyzer", data="hmm").error_kind == "backend_failure"
