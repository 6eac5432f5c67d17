"""Request/response Pydantic models."""

from __future__ import annotations

from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from pagecrawl.crawl.models import DEFAULT_BASE64_MAX_BYTES, DEFAULT_TIMEOUT, CrawlRequest, CustomRule, ExtractionSchema
from pagecrawl.crawl.proxy import normalize_proxy_input

# Transforms a custom rule may name over HTTP; callables only exist in-process.
NAMED_TRANSFORMS: dict[str, Callable[[str], Any]] = {
    "int": lambda value: int(value.strip().replace(",", "")),
    "float": lambda value: float(value.strip().replace(",", "")),
    "strip": str.strip,
    "lower": str.lower,
    "upper": str.upper,
}

TransformName = Literal["int", "float", "strip", "lower", "upper"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CustomRuleOptions(_CamelModel):
    name: str
    selector: str
    attribute: str | None = None
    transform: TransformName | None = None

    def to_rule(self) -> CustomRule:
        return CustomRule(
            name=self.name,
            selector=self.selector,
            attribute=self.attribute,
            transform=NAMED_TRANSFORMS[self.transform] if self.transform else None,
        )


class ExtractionSchemaOptions(_CamelModel):
    title: str | None = None
    author: str | None = None
    publish_date: str | None = None
    content: str | None = None
    images: str | None = None
    custom: list[CustomRuleOptions] = []

    def to_schema(self) -> ExtractionSchema:
        return ExtractionSchema(
            title=self.title,
            author=self.author,
            publish_date=self.publish_date,
            content=self.content,
            images=self.images,
            custom=tuple(rule.to_rule() for rule in self.custom),
        )


class CrawlOptions(_CamelModel):
    """Crawl options accepted by ``POST /crawl``. Durations are in seconds."""

    render: bool = True
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    wait_time: float = Field(default=0.0, ge=0)
    max_depth: int = Field(default=0, ge=0)
    next_selector: str | None = None
    extraction_schema: ExtractionSchemaOptions | None = None
    proxy: str | list[str] | None = None
    user_agent: str | None = None
    extract_images: bool = True
    auto_detect_schema: bool = False
    download_media: bool = False
    media_output_dir: str = "./media"
    base64_embed_images: bool = False
    base64_embed_max_bytes: int = Field(default=DEFAULT_BASE64_MAX_BYTES, gt=0)
    llm_extract: bool = False
    llm_endpoint: str | None = None
    llm_model: str | None = None

    @field_validator("proxy")
    @classmethod
    def _check_proxy(cls, value: str | list[str] | None) -> str | list[str] | None:
        # Parse now so a bad proxy is rejected at submission, not mid-job.
        if value is not None:
            normalize_proxy_input(value)
        return value

    def to_request(self, url: str) -> CrawlRequest:
        return CrawlRequest(
            url=url,
            render=self.render,
            timeout=self.timeout,
            wait_time=self.wait_time,
            max_depth=self.max_depth,
            next_selector=self.next_selector,
            extraction_schema=self.extraction_schema.to_schema() if self.extraction_schema else None,
            proxy=self.proxy or None,
            user_agent=self.user_agent,
            extract_images=self.extract_images,
            auto_detect_schema=self.auto_detect_schema,
            download_media=self.download_media,
            media_output_dir=self.media_output_dir,
            base64_embed_images=self.base64_embed_images,
            base64_embed_max_bytes=self.base64_embed_max_bytes,
            llm_extract=self.llm_extract,
            llm_endpoint=self.llm_endpoint,
            llm_model=self.llm_model,
        )


class CrawlAccepted(_CamelModel):
    job_id: str
    status: str = "pending"
    url: str


def validation_message(exc: ValidationError) -> str:
    """First validation error as a one-line message, e.g. ``maxDepth: ...``."""
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    message = first.get("msg", "Invalid request")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {message}" if location else message
