"""Variant generation from salon rules and messaging best practices.

Rules are matched on test type, applied in descending priority and capped at
``max_variants_per_test - 1`` so one traffic slot stays with the control.
When no rule produces a candidate, a single best-practice default for the
test type is used instead.
"""

import random
import re
import uuid
from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import datetime

import structlog

from .audit import ActionLogger, utc_now
from .config import ExperimentConfig, default_config
from .errors import CampaignNotFoundError, TemplateNotFoundError
from .metrics import compute_rates, metrics_from_history
from .models import (
    Channel,
    CustomerSegment,
    DeliveryRecord,
    GeneratedVariant,
    MessageTemplate,
    TemplatePerformanceAnalysis,
    TestType,
    Variant,
    VariantGenerationRule,
    VariantStatus,
)

logger = structlog.get_logger()

SOCIAL_PROOF = "\n\n✨ Join over 1,000 satisfied customers who love our services!"
SCARCITY = "\n\n⏰ Limited spots available - book now to secure your appointment!"
CALL_TO_ACTION = "Book Your Transformation Today →"
LOCATION_LINE = "\n\n📍 Visit us at {{salon_location}}."
LOYALTY_LINE = "\n\n🎖️ As a valued returning client, enjoy priority booking on your next visit."
NAME_TOKEN = "{{customer_name}}"

_WEAK_CTA = re.compile(r"book now|click here|learn more", re.IGNORECASE)


def shorten(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def best_engagement_hour(history: Sequence[DeliveryRecord]) -> int | None:
    """Hour of day (UTC) with the highest open-or-click share, if any engagement exists."""
    sent: dict[int, int] = defaultdict(int)
    engaged: dict[int, int] = defaultdict(int)
    for record in history:
        hour = record.created_at.hour
        sent[hour] += 1
        if record.opened_at is not None or record.clicked_at is not None:
            engaged[hour] += 1

    best_hour, best_rate = None, 0.0
    for hour in sorted(sent):
        rate = engaged[hour] / sent[hour]
        if rate > best_rate:
            best_hour, best_rate = hour, rate
    return best_hour


class VariantGenerator:
    def __init__(
        self,
        store,
        audit: ActionLogger | None = None,
        config: ExperimentConfig = default_config,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._audit = audit or ActionLogger(store, clock)
        self._config = config
        self._rng = rng or random.Random()
        self._clock = clock

    async def generate_variants(
        self,
        campaign_id: str,
        base_template: MessageTemplate,
        test_type: TestType,
        audience: CustomerSegment | None = None,
        performance_history: Sequence[DeliveryRecord] = (),
    ) -> list[Variant]:
        """Generate, persist and return new variants for a campaign.

        A control variant is created first when the campaign has none.
        Returns an empty list when variant generation is switched off for
        the salon.
        """
        campaign = await self._store.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)

        automation = await self._store.get_automation_config(campaign.salon_id)
        if automation is None or not automation.enable_variant_generation:
            logger.info("variant_generation_disabled", salon_id=campaign.salon_id)
            return []

        rules = await self._store.list_generation_rules(campaign.salon_id, test_type)
        candidates = self.build_candidates(
            base_template,
            test_type,
            rules,
            automation.max_variants_per_test,
            audience,
            performance_history,
        )
        if not candidates:
            return []

        existing = await self._store.list_variants(campaign_id)
        taken = {v.name for v in existing}
        needs_control = not any(v.is_control for v in existing)
        # new arms split evenly across every arm the campaign holds afterwards
        share = 100 // (len(existing) + len(candidates) + int(needs_control))
        position = len(existing)
        created: list[Variant] = []

        if needs_control:
            control = Variant(
                variant_id=str(uuid.uuid4()),
                campaign_id=campaign_id,
                name=self._unique_name("control", taken),
                is_control=True,
                audience_percentage=share,
                priority=position,
                status=VariantStatus.ACTIVE,
                created_at=self._clock(),
            )
            created.append(await self._store.insert_variant(control))
            position += 1

        for candidate in candidates:
            variant = Variant(
                variant_id=str(uuid.uuid4()),
                campaign_id=campaign_id,
                name=self._unique_name(candidate.name, taken),
                template_overrides=candidate.template_overrides,
                channel_override=candidate.channel_override,
                audience_percentage=share,
                priority=position,
                status=VariantStatus.ACTIVE,
                created_at=self._clock(),
            )
            created.append(await self._store.insert_variant(variant))
            position += 1

        logger.info(
            "variants_generated",
            campaign_id=campaign_id,
            test_type=test_type.value,
            count=len(candidates),
        )
        await self._audit.log(
            campaign.salon_id,
            "variants_generated",
            f"Generated {len(candidates)} {test_type.value} variant(s) for {campaign.name}",
            {
                "variants": [v.name for v in created],
                "rationales": [c.rationale for c in candidates],
            },
            campaign_id=campaign_id,
        )
        return created

    @staticmethod
    def _unique_name(name: str, taken: set[str]) -> str:
        candidate, suffix = name, 2
        while candidate in taken:
            candidate = f"{name}_{suffix}"
            suffix += 1
        taken.add(candidate)
        return candidate

    def build_candidates(
        self,
        base_template: MessageTemplate,
        test_type: TestType,
        rules: Sequence[VariantGenerationRule],
        max_variants: int,
        audience: CustomerSegment | None = None,
        history: Sequence[DeliveryRecord] = (),
    ) -> list[GeneratedVariant]:
        """Apply matching rules, falling back to the best-practice default."""
        limit = max(max_variants - 1, 0)
        if limit == 0:
            return []

        matching = sorted(
            (r for r in rules if r.rule_type == test_type and r.is_active),
            key=lambda r: r.priority,
            reverse=True,
        )

        candidates = []
        for rule in matching[:limit]:
            if not self._conditions_met(rule, base_template, audience, history):
                continue
            try:
                candidate = self._apply_rule(rule, base_template, history)
            except Exception:
                logger.exception("variant_rule_failed", rule_id=rule.rule_id, rule_name=rule.name)
                continue
            if candidate is not None:
                candidates.append(candidate)

        if not candidates:
            default = self._default_variant(base_template, test_type, history)
            if default is not None:
                candidates.append(default)
        return candidates

    @staticmethod
    def _conditions_met(
        rule: VariantGenerationRule,
        template: MessageTemplate,
        audience: CustomerSegment | None,
        history: Sequence[DeliveryRecord],
    ) -> bool:
        conditions = rule.conditions
        if (segments := conditions.get("segment_names")) and (
            audience is None or audience.name not in segments
        ):
            return False
        if (channels := conditions.get("channels")) and template.channel.value not in channels:
            return False
        if len(history) < conditions.get("min_history_messages", 0):
            return False
        return True

    def _apply_rule(
        self,
        rule: VariantGenerationRule,
        template: MessageTemplate,
        history: Sequence[DeliveryRecord],
    ) -> GeneratedVariant | None:
        if rule.rule_type == TestType.SUBJECT_LINE:
            return self._subject_variant(rule, template, history)
        if rule.rule_type == TestType.CONTENT:
            return self._content_variant(rule, template)
        if rule.rule_type == TestType.SEND_TIME:
            return self._send_time_variant(rule, history)
        if rule.rule_type == TestType.CHANNEL:
            return self._channel_variant(template, f"{rule.name}_variant")
        if rule.rule_type == TestType.PERSONALIZATION:
            return self._personalization_variant(rule, template)
        return None

    # Subject lines

    def _subject_variant(
        self,
        rule: VariantGenerationRule,
        template: MessageTemplate,
        history: Sequence[DeliveryRecord],
    ) -> GeneratedVariant | None:
        subject = template.subject or ""
        if not subject:
            return None

        gen = self._config.generation
        actions = rule.actions
        options = []
        if actions.get("add_urgency"):
            options.append(f"{self._rng.choice(gen.urgency_phrases)}: {subject}")
        if actions.get("add_personalization"):
            options.append(f"{NAME_TOKEN}, {subject[0].lower()}{subject[1:]}")
        if actions.get("add_emojis"):
            options.append(f"{self._rng.choice(gen.emojis)} {subject}")
        if actions.get("shorten_subject") and len(subject) > gen.short_subject_length:
            options.append(shorten(subject, gen.short_subject_length))
        if actions.get("add_numbers"):
            options.append(f"{self._rng.choice(gen.numbers)} Reasons to Book: {subject}")

        if not options:
            return None
        # Without history there is nothing to learn from, so keep rule order
        chosen = self._rng.choice(options) if history else options[0]
        return GeneratedVariant(
            name=f"{rule.name}_variant",
            template_overrides={"subject": chosen},
            confidence=0.7,
            rationale=f"Subject line rewritten by rule '{rule.name}'",
        )

    # Content

    def _content_variant(
        self, rule: VariantGenerationRule, template: MessageTemplate
    ) -> GeneratedVariant | None:
        content = template.content
        actions = rule.actions
        if actions.get("add_personal_touch") and NAME_TOKEN not in content:
            content = f"Hi {NAME_TOKEN},\n\n{content}"
        if actions.get("improve_call_to_action"):
            content = _WEAK_CTA.sub(CALL_TO_ACTION, content)
        if actions.get("add_social_proof"):
            content += SOCIAL_PROOF
        if actions.get("add_scarcity"):
            content += SCARCITY

        if content == template.content:
            return None
        return GeneratedVariant(
            name=f"{rule.name}_variant",
            template_overrides={"content": content},
            confidence=0.7,
            rationale=f"Content rewritten by rule '{rule.name}'",
        )

    # Send time

    def _send_time_variant(
        self, rule: VariantGenerationRule, history: Sequence[DeliveryRecord]
    ) -> GeneratedVariant | None:
        gen = self._config.generation
        actions = rule.actions
        hour = None
        if actions.get("optimize_for_audience"):
            hour = best_engagement_hour(history)
            if hour is None:
                hour = gen.default_send_hour
        if actions.get("avoid_competition"):
            hour = self._rng.choice(gen.low_competition_hours)
        if hour is None:
            return None
        return GeneratedVariant(
            name=f"{rule.name}_variant",
            template_overrides={"send_time": f"{hour:02d}:00"},
            confidence=0.75,
            rationale=f"Send at {hour:02d}:00 per rule '{rule.name}'",
        )

    # Channel

    @staticmethod
    def _channel_variant(template: MessageTemplate, name: str) -> GeneratedVariant:
        alternate = Channel.SMS if template.channel == Channel.EMAIL else Channel.EMAIL
        return GeneratedVariant(
            name=name,
            template_overrides={"channel": alternate.value},
            channel_override=alternate,
            confidence=0.6,
            rationale=f"Deliver by {alternate.value} instead of {template.channel.value}",
        )

    # Personalization

    def _personalization_variant(
        self, rule: VariantGenerationRule, template: MessageTemplate
    ) -> GeneratedVariant | None:
        overrides = {}
        content = template.content
        actions = rule.actions
        if actions.get("add_name_personalization"):
            if template.subject and NAME_TOKEN not in template.subject:
                overrides["subject"] = f"{NAME_TOKEN}, {template.subject}"
            if NAME_TOKEN not in content:
                content = f"Hi {NAME_TOKEN},\n\n{content}"
        if actions.get("add_location_personalization"):
            content += LOCATION_LINE
        if actions.get("add_behavior_personalization"):
            content += LOYALTY_LINE
        if content != template.content:
            overrides["content"] = content

        if not overrides:
            return None
        return GeneratedVariant(
            name=f"{rule.name}_variant",
            template_overrides=overrides,
            confidence=0.65,
            rationale=f"Personalized by rule '{rule.name}'",
        )

    # Defaults

    def _default_variant(
        self,
        template: MessageTemplate,
        test_type: TestType,
        history: Sequence[DeliveryRecord],
    ) -> GeneratedVariant | None:
        gen = self._config.generation
        if test_type == TestType.SUBJECT_LINE:
            if not template.subject:
                return None
            return GeneratedVariant(
                name="urgency_variant",
                template_overrides={
                    "subject": f"{self._rng.choice(gen.urgency_phrases)}: {template.subject}"
                },
                confidence=0.6,
                rationale="Urgency language tends to lift open rates",
            )
        if test_type == TestType.CONTENT:
            if _WEAK_CTA.search(template.content):
                content = _WEAK_CTA.sub(CALL_TO_ACTION, template.content)
            else:
                content = f"{template.content}\n\n{CALL_TO_ACTION}"
            return GeneratedVariant(
                name="cta_variant",
                template_overrides={"content": content},
                confidence=0.7,
                rationale="A specific call to action tends to lift click-through",
            )
        if test_type == TestType.SEND_TIME:
            hour = best_engagement_hour(history)
            if hour is None:
                hour = gen.default_send_hour
            return GeneratedVariant(
                name="optimal_time_variant",
                template_overrides={"send_time": f"{hour:02d}:00"},
                confidence=0.8,
                rationale=f"Historical engagement peaks around {hour:02d}:00",
            )
        if test_type == TestType.CHANNEL:
            return self._channel_variant(template, "channel_variant")
        if test_type == TestType.PERSONALIZATION:
            if NAME_TOKEN in template.content:
                return None
            return GeneratedVariant(
                name="personalized_variant",
                template_overrides={"content": f"Hi {NAME_TOKEN},\n\n{template.content}"},
                confidence=0.6,
                rationale="Greeting customers by name tends to lift engagement",
            )
        return None

    async def analyze_template_performance(
        self, template_id: str, salon_id: str
    ) -> TemplatePerformanceAnalysis:
        template = await self._store.get_template(template_id)
        if template is None or template.salon_id != salon_id:
            raise TemplateNotFoundError(template_id)

        history = await self._store.list_delivery_history(salon_id=salon_id, template_id=template_id)
        counts = metrics_from_history(history)
        rates = compute_rates(counts)

        suggestions = []
        if rates["open_rate"] < 20:
            suggestions.append("Test a new subject line to lift the open rate")
        if rates["click_rate"] < 5:
            suggestions.append("Strengthen the call to action to lift click-through")
        if template.subject and len(template.subject) > 50:
            suggestions.append("Shorten the subject line to under 50 characters")

        return TemplatePerformanceAnalysis(
            template_id=template_id,
            total_sent=counts.sent_count,
            open_rate=rates["open_rate"],
            click_rate=rates["click_rate"],
            suggestions=suggestions,
        )
