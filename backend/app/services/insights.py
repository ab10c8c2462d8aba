"""Cluster naming with an LLM and a frequency-based fallback.

Classes:
    ClusterProfile: Frequency tallies for one cluster's members.
    ClusterInsightGenerator: Produces one insight per cluster in order of first appearance.

Functions:
    build_cluster_profile(cluster_id, points): Tally roles, employers, sectors, and programs.
    build_cluster_summary(profile): Portuguese summary fed to the LLM prompt.
    build_insight_prompt(summary): Full prompt asking for a JSON object.
    fallback_insight(profile): Rule-based insight used when the LLM path fails.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Sequence

from app.core.config import Settings, get_settings
from app.schemas import ClusterInsight, ClusterPoint
from app.services.openai_client import TextGenerator
from app.utils.text import strip_code_fences

_LOGGER = logging.getLogger(__name__)

NOISE_CLUSTER_ID = -1

_NOISE_NAME = "Ruído"
_NOISE_DESCRIPTION = "Participantes que não se encaixam em nenhum cluster bem definido"
_NOISE_COMMONALITIES = ["Perfis diversos sem padrão claro"]
_DEFAULT_DESCRIPTION = "Cluster identificado por similaridade"
_NOT_SPECIFIED = "Não especificado"

_PROMPT_TEMPLATE = """Você é um especialista em análise de dados e segmentação de perfis profissionais.

Analise o seguinte cluster de participantes e forneça:
1. Um nome conciso e descritivo (máximo 4 palavras)
2. Uma descrição clara do que une este grupo (1-2 frases)
3. Lista de 3-5 características comuns principais

Dados do cluster:
{summary}

Responda APENAS em formato JSON puro (sem markdown) com esta estrutura exata:
{{
  "name": "Nome do Cluster",
  "description": "Descrição detalhada",
  "commonalities": ["característica 1", "característica 2", "característica 3"]
}}"""


@dataclass(slots=True)
class ClusterProfile:
    cluster_id: int
    size: int
    roles: Counter = field(default_factory=Counter)
    employers: Counter = field(default_factory=Counter)
    sectors: Counter = field(default_factory=Counter)
    programs: Counter = field(default_factory=Counter)

    @property
    def display_number(self) -> int:
        return self.cluster_id + 1


def build_cluster_profile(cluster_id: int, points: Sequence[ClusterPoint]) -> ClusterProfile:
    profile = ClusterProfile(cluster_id=cluster_id, size=len(points))
    for point in points:
        meta = point.metadata
        if meta.role:
            profile.roles[meta.role] += 1
        if meta.employer:
            profile.employers[meta.employer] += 1
        if meta.sector:
            profile.sectors[meta.sector] += 1
        if meta.program_brand:
            profile.programs[meta.program_brand] += 1
    return profile


def _format_top(counter: Counter, size: int) -> list[str]:
    return [f"{value} ({count})" for value, count in counter.most_common(size)]


def build_cluster_summary(profile: ClusterProfile) -> str:
    top_roles = _format_top(profile.roles, 5)
    top_sectors = _format_top(profile.sectors, 3)
    top_programs = _format_top(profile.programs, 3)
    lines = [
        f"Cluster {profile.display_number} possui {profile.size} participantes.",
        "",
        "Cargos mais comuns:",
        "\n".join(top_roles),
        "",
        "Setores mais comuns:",
        "\n".join(top_sectors) if top_sectors else _NOT_SPECIFIED,
        "",
        "Programas mais comuns:",
        "\n".join(top_programs) if top_programs else _NOT_SPECIFIED,
        "",
        f"Total de empresas diferentes: {len(profile.employers)}",
    ]
    return "\n".join(lines).strip()


def build_insight_prompt(summary: str) -> str:
    return _PROMPT_TEMPLATE.format(summary=summary)


def noise_insight(count: int) -> ClusterInsight:
    return ClusterInsight(
        cluster_id=NOISE_CLUSTER_ID,
        name=_NOISE_NAME,
        description=_NOISE_DESCRIPTION,
        commonalities=list(_NOISE_COMMONALITIES),
        count=count,
    )


def fallback_insight(profile: ClusterProfile) -> ClusterInsight:
    name = f"Cluster {profile.display_number}"
    commonalities: list[str] = []
    if profile.sectors:
        main_sector = profile.sectors.most_common(1)[0][0]
        name = f"Profissionais de {main_sector}"
        commonalities.append(f"Setor predominante: {main_sector}")
    if profile.roles:
        main_role = profile.roles.most_common(1)[0][0]
        commonalities.append(f"Cargo comum: {main_role}")
    return ClusterInsight(
        cluster_id=profile.cluster_id,
        name=name,
        description=f"Grupo de {profile.size} participantes com perfis similares",
        commonalities=commonalities,
        count=profile.size,
    )


def parse_insight_response(raw: str, profile: ClusterProfile) -> ClusterInsight:
    payload = json.loads(strip_code_fences(raw))
    if not isinstance(payload, dict):
        raise ValueError("Insight response is not a JSON object")
    commonalities = payload.get("commonalities") or []
    if not isinstance(commonalities, list):
        raise ValueError("Insight commonalities is not a list")
    return ClusterInsight(
        cluster_id=profile.cluster_id,
        name=str(payload.get("name") or f"Cluster {profile.display_number}"),
        description=str(payload.get("description") or _DEFAULT_DESCRIPTION),
        commonalities=[str(item) for item in commonalities],
        count=profile.size,
    )


class ClusterInsightGenerator:
    def __init__(self, text_generator: TextGenerator, settings: Optional[Settings] = None) -> None:
        self._generator = text_generator
        self._settings = settings or get_settings()

    async def _describe(self, profile: ClusterProfile) -> ClusterInsight:
        prompt = build_insight_prompt(build_cluster_summary(profile))
        try:
            raw = await self._generator.generate_text(
                prompt,
                model=self._settings.openai_insight_model,
                temperature=self._settings.insight_temperature,
            )
            insight = parse_insight_response(raw, profile)
        except Exception as exc:  # noqa: BLE001 - any failure falls back to rule-based naming
            _LOGGER.warning("Failed to generate insights for cluster %s: %s", profile.cluster_id, exc)
            return fallback_insight(profile)
        _LOGGER.info("Generated insights for cluster %s: %s", profile.display_number, insight.name)
        return insight

    async def generate_cluster_insights(self, points: Sequence[ClusterPoint]) -> list[ClusterInsight]:
        groups: dict[int, list[ClusterPoint]] = {}
        for point in points:
            groups.setdefault(point.cluster, []).append(point)

        insights: list[ClusterInsight] = []
        for cluster_id, members in groups.items():
            if cluster_id == NOISE_CLUSTER_ID:
                insights.append(noise_insight(len(members)))
                continue
            insights.append(await self._describe(build_cluster_profile(cluster_id, members)))

        _LOGGER.info("Generated insights for %s clusters", len(insights))
        return insights
