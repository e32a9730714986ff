"""
Rule-based guidance.

Renders the templated improvement assets (description and directions
skeletons, review request scripts, reply templates, photo checklist, price
guidance, competitor insight) from jinja2 templates. No generation calls:
these are formulaic, and they double as the safe default draft when the
generation service is unavailable or returns unusable content.
"""

from pathlib import Path
from typing import Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from placelens.config.industry_schema import Industry, IndustryConfig
from placelens.models.schemas import BusinessRecord, ImprovementDraft


# =============================================================================
# Constants
# =============================================================================

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

_AUDIENCE = {
    Industry.HAIRSHOP: (
        "손상 없이 자연스러운 스타일을 원하시는 분",
        "커트 후 손질이 쉬운 스타일이 필요하신 분",
        "펌과 염색을 1:1 상담 후 결정하고 싶으신 분",
    ),
    Industry.CAFE: (
        "조용히 작업하거나 공부할 공간이 필요하신 분",
        "직접 만든 디저트와 커피를 함께 즐기고 싶으신 분",
        "사진 찍기 좋은 분위기를 찾으시는 분",
    ),
    Industry.RESTAURANT: (
        "점심과 저녁 식사를 편하게 해결하고 싶으신 분",
        "회식이나 단체 모임 장소를 찾으시는 분",
        "포장과 재방문이 많은 대표 메뉴를 찾으시는 분",
    ),
}

_STRENGTHS = {
    Industry.HAIRSHOP: (
        "디자이너가 처음부터 끝까지 1:1로 상담하고 시술합니다",
        "모발 상태에 맞춘 클리닉과 정품 제품만 사용합니다",
        "시술 후 홈케어 방법까지 안내해 드립니다",
    ),
    Industry.CAFE: (
        "매일 로스팅한 원두로 커피를 내립니다",
        "당일 구운 디저트만 판매합니다",
        "좌석 간격이 넓어 오래 머물기 편합니다",
    ),
    Industry.RESTAURANT: (
        "매일 들어오는 신선한 재료로 조리합니다",
        "대표 메뉴는 주문 즉시 조리해 제공합니다",
        "단체석과 예약 안내가 준비되어 있습니다",
    ),
}

_SERVICE_WORD = {
    Industry.HAIRSHOP: "시술",
    Industry.CAFE: "커피와 디저트",
    Industry.RESTAURANT: "식사",
}


def _lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


# =============================================================================
# Renderer
# =============================================================================


class GuidanceRenderer:
    """Renders guidance assets from the text templates."""

    def __init__(self, templates_dir: Path = TEMPLATES_DIR) -> None:
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(enabled_extensions=["html"]),
        )

    def _render(self, template: str, **context) -> str:
        return self._env.get_template(template).render(**context).strip()

    # -------------------------------------------------------------------------
    # Individual assets
    # -------------------------------------------------------------------------

    def description(
        self,
        record: BusinessRecord,
        config: IndustryConfig,
        keywords: Sequence[str],
        locality: str = "",
    ) -> str:
        return self._render(
            "description.txt",
            name=record.name or "저희 매장",
            locality=locality,
            label=config.label,
            keywords=list(keywords),
            audience=_AUDIENCE[config.industry],
            strengths=_STRENGTHS[config.industry],
        )

    def directions(self, station: str = "") -> str:
        return self._render("directions.txt", station=station)

    def review_request_scripts(self, record: BusinessRecord, config: IndustryConfig) -> list[str]:
        text = self._render(
            "review_request.txt",
            name=record.name or "저희 매장",
            service=_SERVICE_WORD[config.industry],
        )
        return _lines(text)

    def review_reply_templates(self, record: BusinessRecord) -> list[str]:
        return _lines(self._render("review_reply.txt", name=record.name or "저희 매장"))

    def photo_checklist(self, config: IndustryConfig) -> list[str]:
        text = self._render(
            "photo_checklist.txt",
            industry=config.industry.value,
            photo_target=config.photos.target_count,
        )
        return _lines(text)

    def price_guidance(self, config: IndustryConfig) -> str:
        return self._render("price_guidance.txt", strict=config.price.strict, label=config.label)

    def competitor_insight(self, lines: Sequence[str]) -> str:
        return self._render("competitor_insight.txt", lines=list(lines))

    # -------------------------------------------------------------------------
    # Full draft
    # -------------------------------------------------------------------------

    def default_draft(
        self,
        record: BusinessRecord,
        config: IndustryConfig,
        keywords: Sequence[str],
        locality: str = "",
        station: str = "",
        competitor_lines: Sequence[str] = (),
    ) -> ImprovementDraft:
        """Minimal safe draft built only from templates and seed keywords."""
        return ImprovementDraft(
            description=self.description(record, config, keywords, locality),
            directions=self.directions(station),
            keywords=list(keywords),
            review_request_scripts=self.review_request_scripts(record, config),
            review_reply_templates=self.review_reply_templates(record),
            photo_checklist=self.photo_checklist(config),
            competitor_insight=self.competitor_insight(competitor_lines),
            price_guidance=self.price_guidance(config),
        )
