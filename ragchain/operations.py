"""Operation registry: the typed entry points host integrations call.

Each operation has a pydantic input model and a handler that turns validated
input into a JSON-serialisable dict. ``OperationRegistry.execute`` converts
every failure into an ``OperationResult`` carrying an error kind.
"""
from dataclasses import dataclass, field
from typing import Annotated, Callable, Dict, Any, Optional
from pydantic import BaseModel, BeforeValidator, Field, ValidationError
import structlog

from ragchain import config
from ragchain.chat_models import ChatModel, create_chat_model, create_embedding_model
from ragchain.errors import RagChainError, ConfigurationError
from ragchain.memory import ConversationManager, PersistentChatMemoryStore
from ragchain.prompts import analyze_sentiment, answer_prompt, render_prompt_template
from ragchain.rag.chunker import TextSplitter
from ragchain.rag.embeddings import EmbeddingModel
from ragchain.rag.ingest import IngestPipeline
from ragchain.rag.loader import DocumentLoader
from ragchain.rag.models import SourceKind
from ragchain.rag.retriever import Retriever, StoreCache
from ragchain.rag.store_faiss import FAISSVectorStore, create_store

logger = structlog.get_logger()


@dataclass
class OperationContext:
    """Collaborators shared by the operations of one caller scope."""

    embedding_model: EmbeddingModel
    chat_model: ChatModel
    loader: DocumentLoader = field(default_factory=DocumentLoader)
    store_cache: StoreCache = field(default_factory=StoreCache)
    length_function: Optional[Callable[[str], int]] = None

    @classmethod
    def from_config(cls) -> "OperationContext":
        return cls(
            embedding_model=create_embedding_model(),
            chat_model=create_chat_model(),
        )

    def pipeline(self, chunk_size: int, chunk_overlap: int) -> IngestPipeline:
        splitter = TextSplitter(chunk_size, chunk_overlap, self.length_function)
        return IngestPipeline(splitter, self.embedding_model, self.loader)

    def retriever(self) -> Retriever:
        return Retriever(self.embedding_model, self.chat_model)


# Input models

SourceKindField = Annotated[SourceKind, BeforeValidator(SourceKind.parse)]


class LoadDocumentAndAnswerInput(BaseModel):
    """Answer a question from a single document, without persisting a store."""
    question: str = Field(..., min_length=1)
    source: str = Field(..., description="File path or URL")
    source_kind: SourceKindField
    max_results: int = Field(default=config.RETRIEVAL_MAX_RESULTS, ge=1)
    min_score: Optional[float] = Field(default=None, ge=-1.0, le=1.0)


class ChatWithMemoryInput(BaseModel):
    message: str = Field(..., min_length=1)
    memory_id: str = Field(..., min_length=1)
    db_file_path: Optional[str] = Field(default=None, description="Defaults to MEMORY_DB_PATH")
    max_messages: int = Field(default=config.MEMORY_MAX_MESSAGES, ge=1)


class AnswerPromptInput(BaseModel):
    prompt: str = Field(..., min_length=1)


class PromptTemplateInput(BaseModel):
    """Fill a template's instructions and dataset slots, then answer it."""
    template: str = Field(..., min_length=1)
    instructions: str = Field(..., min_length=1)
    dataset: str = ""


class SentimentInput(BaseModel):
    data: str = Field(..., min_length=1, description="Text to classify")


class CreateStoreInput(BaseModel):
    store_name: str = Field(..., min_length=1, description="Snapshot file path")


class AddDocumentInput(BaseModel):
    store_name: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    source_kind: SourceKindField


class AddFolderInput(BaseModel):
    store_name: str = Field(..., min_length=1)
    folder_path: str = Field(..., min_length=1)
    source_kind: SourceKindField


class QueryStoreInput(BaseModel):
    store_name: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1)
    max_results: int = Field(default=config.RETRIEVAL_MAX_RESULTS, ge=1)
    # 0 means "unset" for compatibility with existing callers
    min_score: float = Field(default=0.0, ge=-1.0, le=1.0)
    get_latest: bool = True


class AnswerFromStoreInput(BaseModel):
    store_name: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1)
    max_results: int = Field(default=config.RETRIEVAL_MAX_RESULTS, ge=1)
    min_score: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    get_latest: bool = True


# Handlers


def load_document_and_answer(
    ctx: OperationContext, params: LoadDocumentAndAnswerInput
) -> Dict[str, Any]:
    store = FAISSVectorStore()
    pipeline = ctx.pipeline(config.CHUNK_SIZE, config.CHUNK_OVERLAP)
    pipeline.ingest_document(params.source, params.source_kind, store)

    answer = ctx.retriever().answer(
        params.question, store, params.max_results, params.min_score
    )
    result = answer.to_dict()
    result.update(
        question=params.question,
        source=params.source,
        source_kind=params.source_kind.value,
    )
    return result


def chat_with_memory(ctx: OperationContext, params: ChatWithMemoryInput) -> Dict[str, Any]:
    db_file_path = params.db_file_path or str(config.MEMORY_DB_PATH)
    store = PersistentChatMemoryStore.initialize(db_file_path)
    manager = ConversationManager(store, ctx.chat_model)
    turn = manager.chat(params.memory_id, params.message, params.max_messages)

    result = turn.to_dict()
    result.update(db_file_path=db_file_path, max_messages=params.max_messages)
    return result


def answer_prompt_operation(ctx: OperationContext, params: AnswerPromptInput) -> Dict[str, Any]:
    completion = answer_prompt(ctx.chat_model, params.prompt)
    return {
        "response": completion.text,
        "token_usage": completion.token_usage.to_dict(),
    }


def define_prompt_template(ctx: OperationContext, params: PromptTemplateInput) -> Dict[str, Any]:
    prompt = render_prompt_template(params.template, params.instructions, params.dataset)
    completion = answer_prompt(ctx.chat_model, prompt)
    return {
        "response": completion.text,
        "prompt": prompt,
        "token_usage": completion.token_usage.to_dict(),
    }


def sentiment_analyzer(ctx: OperationContext, params: SentimentInput) -> Dict[str, Any]:
    sentiment = analyze_sentiment(ctx.chat_model, params.data)
    return {"sentiment": sentiment.value}


def create_store_operation(ctx: OperationContext, params: CreateStoreInput) -> Dict[str, Any]:
    create_store(params.store_name)
    ctx.store_cache.mark_stale(params.store_name)
    return {"store_name": params.store_name, "status": "created"}


def add_document_to_store(ctx: OperationContext, params: AddDocumentInput) -> Dict[str, Any]:
    store = FAISSVectorStore.load(params.store_name)
    pipeline = ctx.pipeline(config.STORE_CHUNK_SIZE, config.STORE_CHUNK_OVERLAP)
    ingested = pipeline.ingest_document(params.source, params.source_kind, store)
    store.serialize(params.store_name)
    ctx.store_cache.mark_stale(params.store_name)

    return {
        "store_name": params.store_name,
        "source": params.source,
        "source_kind": params.source_kind.value,
        "segments_added": ingested.segments_added,
        "status": "updated",
    }


def add_folder_to_store(ctx: OperationContext, params: AddFolderInput) -> Dict[str, Any]:
    store = FAISSVectorStore.load(params.store_name)
    pipeline = ctx.pipeline(config.STORE_CHUNK_SIZE, config.STORE_CHUNK_OVERLAP)
    ingested = pipeline.ingest_folder(params.folder_path, params.source_kind, store)
    store.serialize(params.store_name)
    ctx.store_cache.mark_stale(params.store_name)

    result = ingested.to_dict()
    result.update(store_name=params.store_name, status="updated")
    return result


def query_store(ctx: OperationContext, params: QueryStoreInput) -> Dict[str, Any]:
    min_score = params.min_score if params.min_score != 0 else None
    store = ctx.store_cache.get(params.store_name, params.get_latest)
    retrieval = ctx.retriever().retrieve(
        params.question, store, params.max_results, min_score
    )
    return {
        "store_name": params.store_name,
        "question": params.question,
        "max_results": retrieval.max_results,
        "min_score": retrieval.min_score,
        "information": retrieval.information,
        "sources": [source.to_dict() for source in retrieval.sources],
    }


def answer_from_store(ctx: OperationContext, params: AnswerFromStoreInput) -> Dict[str, Any]:
    store = ctx.store_cache.get(params.store_name, params.get_latest)
    answer = ctx.retriever().answer(
        params.question, store, params.max_results, params.min_score
    )
    result = answer.to_dict()
    result.update(
        store_name=params.store_name,
        question=params.question,
        get_latest=params.get_latest,
    )
    return result


@dataclass
class Operation:
    """Operation definition with input schema and handler."""
    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[[OperationContext, BaseModel], Dict[str, Any]]


@dataclass
class OperationResult:
    """Result of an operation execution."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error_kind": self.error_kind, "error": self.error}


class OperationRegistry:
    """Registry mapping operation names to typed handlers."""

    def __init__(self):
        self.operations: Dict[str, Operation] = {}

    def register(self, operation: Operation) -> None:
        """Register an operation."""
        self.operations[operation.name] = operation
        logger.debug("operation_registered", operation=operation.name)

    def get_operation(self, name: str) -> Optional[Operation]:
        """Get an operation by name."""
        return self.operations.get(name)

    def list_operations(self) -> list[Operation]:
        """List all registered operations."""
        return list(self.operations.values())

    def execute(
        self, name: str, args: Dict[str, Any], ctx: OperationContext
    ) -> OperationResult:
        """Execute an operation with the given arguments.

        Args:
            name: Name of the operation to execute
            args: Arguments validated against the operation's input model
            ctx: Collaborators for this caller scope

        Returns:
            OperationResult with success status and data or error
        """
        operation = self.get_operation(name)

        if not operation:
            logger.error("operation_not_found", operation=name)
            return OperationResult(
                success=False,
                error=f"Operation '{name}' not found",
                error_kind="unknown_operation",
            )

        try:
            params = operation.input_model(**args)
            data = operation.handler(ctx, params)

        except ValidationError as e:
            logger.error("operation_invalid_input", operation=name, error=str(e))
            return OperationResult(
                success=False, error=str(e), error_kind=ConfigurationError.kind
            )

        except RagChainError as e:
            logger.error(
                "operation_failed", operation=name, error_kind=e.kind, error=e.message
            )
            return OperationResult(success=False, error=e.message, error_kind=e.kind)

        except Exception as e:
            logger.exception("operation_crashed", operation=name, error=str(e))
            return OperationResult(
                success=False,
                error=f"Operation failed: {e}",
                error_kind="internal_error",
            )

        logger.info("operation_executed", operation=name)
        return OperationResult(success=True, data=data)


def build_registry() -> OperationRegistry:
    """Create a registry holding every pipeline operation."""
    registry = OperationRegistry()
    for operation in (
        Operation(
            "answer-prompt",
            "Send a prompt straight to the chat model",
            AnswerPromptInput,
            answer_prompt_operation,
        ),
        Operation(
            "define-prompt-template",
            "Answer a template filled with instructions and a dataset",
            PromptTemplateInput,
            define_prompt_template,
        ),
        Operation(
            "sentiment-analyzer",
            "Classify text as POSITIVE, NEUTRAL or NEGATIVE",
            SentimentInput,
            sentiment_analyzer,
        ),
        Operation(
            "load-document-and-answer",
            "Answer a question from one document without persisting it",
            LoadDocumentAndAnswerInput,
            load_document_and_answer,
        ),
        Operation(
            "chat-with-memory",
            "Answer a message within a persisted conversation window",
            ChatWithMemoryInput,
            chat_with_memory,
        ),
        Operation(
            "create-store",
            "Create an empty vector store snapshot",
            CreateStoreInput,
            create_store_operation,
        ),
        Operation(
            "add-document-to-store",
            "Add a text file, PDF or web page to a store",
            AddDocumentInput,
            add_document_to_store,
        ),
        Operation(
            "add-folder-to-store",
            "Add every file in a directory tree to a store",
            AddFolderInput,
            add_folder_to_store,
        ),
        Operation(
            "query-store",
            "Retrieve the segments most relevant to a question",
            QueryStoreInput,
            query_store,
        ),
        Operation(
            "answer-from-store",
            "Answer a question grounded in a store",
            AnswerFromStoreInput,
            answer_from_store,
        ),
    ):
        registry.register(operation)
    return registry
