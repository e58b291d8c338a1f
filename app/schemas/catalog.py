from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field, model_validator

from app.core.errors import CatalogIntegrityError

# Reserved entry node; every catalog must define it.
INITIAL_FLOW = "initial"


class Product(BaseModel):
    id: str
    name: str = Field(min_length=1, max_length=255)
    description: str = ""


class FlowOption(BaseModel):
    """A button on a flow node: either a redirect or a canned response."""

    id: str = Field(min_length=1, max_length=64)
    label: str = Field(min_length=1, max_length=255)
    target_flow: str | None = Field(default=None, max_length=64)
    response_text: str | None = Field(default=None, max_length=20000)
    # Extra substrings that select this option from typed input.
    keywords: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _redirect_xor_response(self) -> FlowOption:
        if (self.target_flow is None) == (self.response_text is None):
            raise ValueError(
                f"option {self.id!r} must set exactly one of target_flow or response_text"
            )
        return self

    @property
    def is_redirect(self) -> bool:
        return self.target_flow is not None

    def match_tokens(self) -> list[str]:
        tokens = [self.label, *self.keywords]
        return [t.strip().lower() for t in tokens if t.strip()]


class FlowNode(BaseModel):
    flow_id: str = Field(min_length=1, max_length=64)
    name: str = ""
    prompt_text: str = Field(min_length=1)
    options: list[FlowOption] = Field(default_factory=list)

    def get_option(self, option_id: str) -> FlowOption | None:
        return next((o for o in self.options if o.id == option_id), None)

    def match(self, text: str) -> FlowOption | None:
        """First option (in source order) with a token contained in `text`."""
        normalized = text.lower()
        for option in self.options:
            for token in option.match_tokens():
                if token in normalized:
                    return option
        return None


class FlowCatalog(BaseModel):
    version: int = 0
    nodes: list[FlowNode] = Field(default_factory=list)

    def get(self, flow_id: str) -> FlowNode | None:
        return next((n for n in self.nodes if n.flow_id == flow_id), None)

    def flow_ids(self) -> list[str]:
        return [n.flow_id for n in self.nodes]

    def problems(self) -> list[str]:
        found: list[str] = []
        ids = self.flow_ids()

        if INITIAL_FLOW not in ids:
            found.append(f"missing reserved flow {INITIAL_FLOW!r}")

        seen: set[str] = set()
        for flow_id in ids:
            if flow_id in seen:
                found.append(f"duplicate flow id {flow_id!r}")
            seen.add(flow_id)

        for node in self.nodes:
            option_ids: set[str] = set()
            for option in node.options:
                if option.id in option_ids:
                    found.append(
                        f"flow {node.flow_id!r}: duplicate option id {option.id!r}"
                    )
                option_ids.add(option.id)

                if not option.match_tokens():
                    found.append(
                        f"flow {node.flow_id!r}: option {option.id!r} has no match tokens"
                    )

                if option.is_redirect and option.target_flow not in seen:
                    found.append(
                        f"flow {node.flow_id!r}: option {option.id!r} targets "
                        f"unknown flow {option.target_flow!r}"
                    )

            found.extend(_keyword_conflicts(node))

        return found

    def check_integrity(self) -> None:
        found = self.problems()
        if found:
            raise CatalogIntegrityError(found)


def _keyword_conflicts(node: FlowNode) -> list[str]:
    # A later option is unreachable by any token that contains a token of an
    # earlier option, since matching is first-substring-wins.
    found: list[str] = []
    for i, earlier in enumerate(node.options):
        earlier_tokens = earlier.match_tokens()
        for later in node.options[i + 1 :]:
            for token in later.match_tokens():
                clash = next((t for t in earlier_tokens if t in token), None)
                if clash is not None:
                    found.append(
                        f"flow {node.flow_id!r}: keyword {token!r} of option "
                        f"{later.id!r} is shadowed by {clash!r} of option {earlier.id!r}"
                    )
    return found


class CatalogVersionOut(BaseModel):
    version: int
    is_published: bool
    created_at: dt.datetime
    published_at: dt.datetime | None


class CatalogDraftRequest(BaseModel):
    admin_password: str = ""
    nodes: list[FlowNode] = Field(min_length=1)


class CatalogPublishRequest(BaseModel):
    admin_password: str = ""
