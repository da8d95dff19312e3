"""
Question Bank: the static catalog of interview questions.

Questions are partitioned into four blocks and asked in definition
order within each block:

- context:    7 fixed questions, always asked
- expertise:  4 open probes used to classify the respondent's strong area
- deep-dive:  5 questions per area; only the detected area's are asked
- risk-scan:  1 question per area; only the 3 selected areas are asked

Every question targets one or more dotted fields in the session's
extracted data (e.g. "company.team_size"). The first target field is the
question's essential field for completeness scoring.

Usage:
    bank = QuestionBank()
    bank.get_questions_by_block(Block.CONTEXT)
    bank.get_deep_dive_questions(Area.SALES)
    bank.get_risk_scan_question(Area.FINANCE)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from assessment.exceptions import ExtractionFailure, QuestionNotFound
from assessment.interview.extractors import (
    Extractor,
    choice_field,
    duration_field,
    flag_field,
    int_field,
    known_metric_field,
    money_field,
    number_field,
    parse_money,
    parse_percent,
    parse_yes_no,
    percent_field,
    text_field,
    year_field,
)
from assessment.interview.models import Area, Block, InputType, Persona

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Question Definition
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Question:
    """
    A single catalog question.

    Attributes:
        id: Unique question identifier (e.g., "ctx-001").
        block: Which block this belongs to.
        text: The question presented to the respondent.
        extractor: Parses the raw answer into `{field: value}`.
        fields: Fields the extractor populates; fields[0] is essential.
        area: Business area (None for context/expertise probes).
        input_type: How the UI should collect the answer.
        options: Choices for single/multi-choice questions.
        quantifiable: The answer is expected to contain a number.
        open_ended: Free-text probe, checked for vagueness and hedging.
        weight: Relative importance inside its area (0-1).
        placeholder: Example answer shown in the input.
        help_text: Helper text shown below the question.
        applies_to_personas: Restrict to these personas (empty = everyone).
    """
    id: str
    block: Block
    text: str
    extractor: Extractor
    fields: tuple[str, ...]
    area: Optional[Area] = None
    input_type: InputType = InputType.TEXT
    options: tuple[str, ...] = ()
    quantifiable: bool = False
    open_ended: bool = False
    weight: float = 1.0
    placeholder: str = ""
    help_text: str = ""
    applies_to_personas: frozenset[Persona] = frozenset()

    @property
    def essential_field(self) -> str:
        return self.fields[0]

    def applies_to(self, persona: Optional[Persona]) -> bool:
        if not self.applies_to_personas or persona is None:
            return True
        return persona in self.applies_to_personas

    def extract(self, answer: str) -> dict[str, Any]:
        """Run the extractor, tagging failures with this question's id."""
        try:
            return self.extractor(answer)
        except ExtractionFailure as e:
            e.question_id = self.id
            raise

    def to_dict(self) -> dict[str, Any]:
        """Serializable view for API responses (no extractor)."""
        return {
            "id": self.id,
            "block": self.block.value,
            "area": self.area.value if self.area else None,
            "text": self.text,
            "input_type": self.input_type.value,
            "options": list(self.options),
            "placeholder": self.placeholder,
            "help_text": self.help_text,
        }


# ---------------------------------------------------------------------------
# Custom extractors
# ---------------------------------------------------------------------------

def _monthly_revenue(answer: str) -> dict[str, Any]:
    lowered = answer.lower()
    if "pre-revenue" in lowered or lowered.strip() in ("0", "none", "zero"):
        return {"company.monthly_revenue": 0.0}
    value = parse_money(answer)
    if value is None:
        raise ExtractionFailure(
            "Could not extract an amount for company.monthly_revenue",
            field="company.monthly_revenue",
            raw_answer=answer,
        )
    return {"company.monthly_revenue": value}


def _profitability(answer: str) -> dict[str, Any]:
    flag = parse_yes_no(answer)
    margin = parse_percent(answer) if flag is not False else None
    if flag is False:
        return {"finance.profitable": False}
    if flag is True or margin is not None:
        result: dict[str, Any] = {"finance.profitable": True}
        if margin is not None:
            result["finance.profit_margin"] = margin
        return result
    raise ExtractionFailure(
        "Could not tell whether the company is profitable",
        field="finance.profitable",
        raw_answer=answer,
    )


def _risk(area: Area) -> Extractor:
    return flag_field(f"risk.{area.value}")


_YES_NO = ("Yes", "No")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

CONTEXT_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="ctx-001",
        block=Block.CONTEXT,
        text="What is the name of your company?",
        extractor=text_field("company.name"),
        fields=("company.name",),
        placeholder="Acme Analytics",
    ),
    Question(
        id="ctx-002",
        block=Block.CONTEXT,
        text="Which industry or segment do you operate in?",
        extractor=text_field("company.industry"),
        fields=("company.industry",),
        placeholder="B2B SaaS, e-commerce, fintech, healthtech...",
    ),
    Question(
        id="ctx-003",
        block=Block.CONTEXT,
        text="Which stage best describes the company today?",
        extractor=choice_field(
            "company.stage",
            (
                ("early", "early-stage"),
                ("pre-seed", "early-stage"),
                ("scaleup", "scaleup"),
                ("scale-up", "scaleup"),
                ("enterprise", "enterprise"),
                ("startup", "startup"),
            ),
        ),
        fields=("company.stage",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "Early-stage (pre-revenue or first customers)",
            "Startup (finding product-market fit, growing)",
            "Scaleup (proven model, scaling)",
            "Enterprise (mature, established)",
        ),
    ),
    Question(
        id="ctx-004",
        block=Block.CONTEXT,
        area=Area.PEOPLE,
        text="How many people work at the company today?",
        extractor=int_field("company.team_size", "people.headcount"),
        fields=("company.team_size", "people.headcount"),
        quantifiable=True,
        placeholder="Approximate headcount",
    ),
    Question(
        id="ctx-005",
        block=Block.CONTEXT,
        area=Area.FINANCE,
        text="What is your approximate monthly revenue?",
        extractor=_monthly_revenue,
        fields=("company.monthly_revenue",),
        quantifiable=True,
        placeholder="$50k, $500k, $5M",
        help_text="A rough range is fine",
    ),
    Question(
        id="ctx-006",
        block=Block.CONTEXT,
        text="In which year was the company founded?",
        extractor=year_field("company.year_founded"),
        fields=("company.year_founded",),
        quantifiable=True,
        placeholder="2021",
    ),
    Question(
        id="ctx-007",
        block=Block.CONTEXT,
        text="What is the main goal for the next 6 to 12 months?",
        extractor=text_field("goals.primary_goal", min_length=5),
        fields=("goals.primary_goal",),
        open_ended=True,
        placeholder="Grow 3x, cut churn in half, launch a new product line",
    ),
)

EXPERTISE_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="exp-001",
        block=Block.EXPERTISE,
        text="What is the biggest challenge the company faces today? What keeps you up at night?",
        extractor=text_field("expertise.main_challenge", min_length=10),
        fields=("expertise.main_challenge",),
        open_ended=True,
        help_text="This tells us where you need the most support",
    ),
    Question(
        id="exp-002",
        block=Block.EXPERTISE,
        text="If you could completely transform ONE area in the next 3 months, which would it be and why?",
        extractor=text_field("expertise.transformation_area", min_length=10),
        fields=("expertise.transformation_area",),
        open_ended=True,
        placeholder="Marketing, because our CAC is far too high...",
    ),
    Question(
        id="exp-003",
        block=Block.EXPERTISE,
        text="Which metrics do you follow every week, and why those?",
        extractor=text_field("expertise.tracked_metrics", min_length=3),
        fields=("expertise.tracked_metrics",),
        open_ended=True,
        weight=0.8,
        placeholder="MRR, CAC/LTV, NPS...",
        help_text="The metrics you watch reveal your priorities",
    ),
    Question(
        id="exp-004",
        block=Block.EXPERTISE,
        text="Describe a recent situation where the company lost money or an opportunity. What happened?",
        extractor=text_field("expertise.recent_loss", min_length=10),
        fields=("expertise.recent_loss",),
        open_ended=True,
    ),
)

MARKETING_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="mktg-001",
        block=Block.DEEP_DIVE,
        area=Area.MARKETING,
        text="What is your main customer acquisition channel today?",
        extractor=choice_field(
            "marketing.primary_channel",
            (
                ("organic", "organic"),
                ("seo", "organic"),
                ("paid", "paid"),
                ("ads", "paid"),
                ("outbound", "outbound"),
                ("referral", "referral"),
                ("word of mouth", "referral"),
                ("partner", "partnerships"),
            ),
            default="other",
        ),
        fields=("marketing.primary_channel",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "Organic (SEO, social)",
            "Paid (search and social ads)",
            "Outbound / direct sales",
            "Referrals / word of mouth",
            "Partnerships",
        ),
        weight=0.7,
    ),
    Question(
        id="mktg-002",
        block=Block.DEEP_DIVE,
        area=Area.MARKETING,
        text="Do you know your CAC (customer acquisition cost)? If so, roughly how much?",
        extractor=known_metric_field("marketing.cac_known", "marketing.cac"),
        fields=("marketing.cac_known", "marketing.cac"),
        weight=0.9,
        placeholder="Yes, about $400",
    ),
    Question(
        id="mktg-003",
        block=Block.DEEP_DIVE,
        area=Area.MARKETING,
        text="What is your conversion rate from top of funnel to paying customer?",
        extractor=percent_field("marketing.conversion_rate"),
        fields=("marketing.conversion_rate",),
        quantifiable=True,
        weight=0.8,
        placeholder="2%, 5%, 10%",
    ),
    Question(
        id="mktg-004",
        block=Block.DEEP_DIVE,
        area=Area.MARKETING,
        text="How do you activate new users or customers after they sign up?",
        extractor=text_field("marketing.activation_strategy"),
        fields=("marketing.activation_strategy",),
        open_ended=True,
        weight=0.7,
        placeholder="Onboarding emails, guided trial, CS call...",
    ),
    Question(
        id="mktg-005",
        block=Block.DEEP_DIVE,
        area=Area.MARKETING,
        text="What is the biggest problem in your marketing and growth funnel today?",
        extractor=text_field("marketing.top_challenge"),
        fields=("marketing.top_challenge",),
        open_ended=True,
        weight=0.9,
    ),
)

SALES_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="sales-001",
        block=Block.DEEP_DIVE,
        area=Area.SALES,
        text="How long is your average sales cycle, from first contact to close?",
        extractor=duration_field("sales.sales_cycle_days"),
        fields=("sales.sales_cycle_days",),
        quantifiable=True,
        weight=0.8,
        placeholder="7 days, 30 days, 3 months",
    ),
    Question(
        id="sales-002",
        block=Block.DEEP_DIVE,
        area=Area.SALES,
        text="What is your average deal size?",
        extractor=money_field("sales.avg_ticket"),
        fields=("sales.avg_ticket",),
        quantifiable=True,
        weight=0.7,
        placeholder="$500, $5k, $50k",
    ),
    Question(
        id="sales-003",
        block=Block.DEEP_DIVE,
        area=Area.SALES,
        text="What is your opportunity win rate?",
        extractor=percent_field("sales.win_rate"),
        fields=("sales.win_rate",),
        quantifiable=True,
        weight=0.9,
        placeholder="20%, 50%",
    ),
    Question(
        id="sales-004",
        block=Block.DEEP_DIVE,
        area=Area.SALES,
        text="Do you use a CRM? If so, how deeply is it adopted?",
        extractor=choice_field(
            "sales.crm_usage",
            (
                ("don't", "none"),
                ("no crm", "none"),
                ("basic", "basic"),
                ("fully", "advanced"),
                ("pipeline", "advanced"),
            ),
        ),
        fields=("sales.crm_usage",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "We don't use a CRM yet",
            "Basic record keeping only",
            "Fully adopted (pipeline, forecast, automation)",
        ),
        weight=0.6,
    ),
    Question(
        id="sales-005",
        block=Block.DEEP_DIVE,
        area=Area.SALES,
        text="What is the main bottleneck in sales today?",
        extractor=text_field("sales.top_challenge"),
        fields=("sales.top_challenge",),
        open_ended=True,
        weight=0.9,
        placeholder="Not enough qualified leads, cycle too long...",
    ),
)

PRODUCT_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="prod-001",
        block=Block.DEEP_DIVE,
        area=Area.PRODUCT,
        text="How long does it take to build and ship an average feature?",
        extractor=duration_field("product.development_cycle_days"),
        fields=("product.development_cycle_days",),
        quantifiable=True,
        weight=0.8,
        placeholder="1 week, 1 month, 3 months",
    ),
    Question(
        id="prod-002",
        block=Block.DEEP_DIVE,
        area=Area.PRODUCT,
        text="How many releases or deploys do you ship per month?",
        extractor=int_field("product.releases_per_month"),
        fields=("product.releases_per_month",),
        quantifiable=True,
        weight=0.7,
    ),
    Question(
        id="prod-003",
        block=Block.DEEP_DIVE,
        area=Area.PRODUCT,
        text="Where are you on the product-market fit curve?",
        extractor=choice_field(
            "product.pmf_stage",
            (
                ("searching", "searching"),
                ("early", "early-signals"),
                ("strong", "strong"),
                ("scaling", "scaling"),
            ),
        ),
        fields=("product.pmf_stage",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "Still searching for fit",
            "Early signals of fit",
            "Strong fit in our core segment",
            "Scaling a proven fit to new segments",
        ),
        weight=0.9,
    ),
    Question(
        id="prod-004",
        block=Block.DEEP_DIVE,
        area=Area.PRODUCT,
        text="How do you collect and prioritize user feedback?",
        extractor=choice_field(
            "product.feedback_process",
            (
                ("no formal", "none"),
                ("ad hoc", "ad-hoc"),
                ("ad-hoc", "ad-hoc"),
                ("structured", "structured"),
                ("continuous", "continuous"),
            ),
        ),
        fields=("product.feedback_process",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "No formal process",
            "Ad hoc conversations",
            "Structured interviews and surveys",
            "Continuous discovery with product analytics",
        ),
        weight=0.6,
    ),
    Question(
        id="prod-005",
        block=Block.DEEP_DIVE,
        area=Area.PRODUCT,
        text="What is the biggest product challenge today?",
        extractor=text_field("product.top_challenge"),
        fields=("product.top_challenge",),
        open_ended=True,
        weight=0.9,
    ),
)

OPERATIONS_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="ops-001",
        block=Block.DEEP_DIVE,
        area=Area.OPERATIONS,
        text="What is your average fulfillment time, from purchase to delivery or activation?",
        extractor=duration_field("operations.fulfillment_days"),
        fields=("operations.fulfillment_days",),
        quantifiable=True,
        weight=0.8,
        placeholder="Same day, 3 days, 2 weeks",
    ),
    Question(
        id="ops-002",
        block=Block.DEEP_DIVE,
        area=Area.OPERATIONS,
        text="What share of orders or deliveries have an operational error?",
        extractor=percent_field("operations.error_rate"),
        fields=("operations.error_rate",),
        quantifiable=True,
        weight=0.8,
        placeholder="1%, 5%",
    ),
    Question(
        id="ops-003",
        block=Block.DEEP_DIVE,
        area=Area.OPERATIONS,
        text="Are your processes documented?",
        extractor=choice_field(
            "operations.process_documentation",
            (
                ("not", "none"),
                ("partial", "partial"),
                ("most", "documented"),
                ("fully", "documented"),
            ),
        ),
        fields=("operations.process_documentation",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "Not documented",
            "Partially documented",
            "Mostly documented",
            "Fully documented and followed",
        ),
        weight=0.6,
    ),
    Question(
        id="ops-004",
        block=Block.DEEP_DIVE,
        area=Area.OPERATIONS,
        text="How automated are your operations?",
        extractor=choice_field(
            "operations.automation_level",
            (
                ("manual", "manual"),
                ("partial", "partial"),
                ("highly", "automated"),
                ("fully", "automated"),
            ),
        ),
        fields=("operations.automation_level",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "Manual, spreadsheets and email",
            "Partially automated",
            "Highly automated",
        ),
        weight=0.7,
    ),
    Question(
        id="ops-005",
        block=Block.DEEP_DIVE,
        area=Area.OPERATIONS,
        text="What is the main operational bottleneck today?",
        extractor=text_field("operations.top_challenge"),
        fields=("operations.top_challenge",),
        open_ended=True,
        weight=0.9,
    ),
)

FINANCE_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="fin-001",
        block=Block.DEEP_DIVE,
        area=Area.FINANCE,
        text="How many months of runway does the company have?",
        extractor=number_field("finance.runway_months", what="a number of months"),
        fields=("finance.runway_months",),
        quantifiable=True,
        weight=1.0,
        placeholder="6, 12, 24 months",
    ),
    Question(
        id="fin-002",
        block=Block.DEEP_DIVE,
        area=Area.FINANCE,
        text="What is your monthly burn rate?",
        extractor=money_field("finance.monthly_burn"),
        fields=("finance.monthly_burn",),
        quantifiable=True,
        weight=0.8,
        placeholder="$40k, $250k",
    ),
    Question(
        id="fin-003",
        block=Block.DEEP_DIVE,
        area=Area.FINANCE,
        text="Is the company profitable? If so, what is the margin?",
        extractor=_profitability,
        fields=("finance.profitable", "finance.profit_margin"),
        weight=0.9,
        placeholder="Yes, around 15%",
    ),
    Question(
        id="fin-004",
        block=Block.DEEP_DIVE,
        area=Area.FINANCE,
        text="How do you do financial planning?",
        extractor=choice_field(
            "finance.planning_maturity",
            (
                ("no formal", "none"),
                ("spreadsheet", "basic"),
                ("annual", "annual"),
                ("rolling", "rolling"),
            ),
        ),
        fields=("finance.planning_maturity",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "No formal planning",
            "Basic spreadsheet budget",
            "Annual budget with quarterly reviews",
            "Rolling forecast reviewed monthly",
        ),
        weight=0.7,
    ),
    Question(
        id="fin-005",
        block=Block.DEEP_DIVE,
        area=Area.FINANCE,
        text="What is the biggest financial challenge today?",
        extractor=text_field("finance.top_challenge"),
        fields=("finance.top_challenge",),
        open_ended=True,
        weight=0.9,
    ),
)

PEOPLE_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="ppl-001",
        block=Block.DEEP_DIVE,
        area=Area.PEOPLE,
        text="How fast is the team growing (% per year)?",
        extractor=percent_field("people.team_growth_rate"),
        fields=("people.team_growth_rate",),
        quantifiable=True,
        weight=0.6,
    ),
    Question(
        id="ppl-002",
        block=Block.DEEP_DIVE,
        area=Area.PEOPLE,
        text="What is your annual employee turnover?",
        extractor=percent_field("people.turnover_rate"),
        fields=("people.turnover_rate",),
        quantifiable=True,
        weight=0.9,
        placeholder="5%, 20%",
    ),
    Question(
        id="ppl-003",
        block=Block.DEEP_DIVE,
        area=Area.PEOPLE,
        text="How long does a new hire take to become productive?",
        extractor=duration_field("people.ramp_up_days"),
        fields=("people.ramp_up_days",),
        quantifiable=True,
        weight=0.7,
        placeholder="2 weeks, 3 months",
    ),
    Question(
        id="ppl-004",
        block=Block.DEEP_DIVE,
        area=Area.PEOPLE,
        text="Does the company have well-defined values and culture?",
        extractor=choice_field(
            "people.culture_clarity",
            (
                ("not", "undefined"),
                ("informal", "informal"),
                ("lived", "lived"),
                ("written", "defined"),
            ),
        ),
        fields=("people.culture_clarity",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "Not really defined",
            "Informal, mostly in the founders' heads",
            "Written down and shared",
            "Written down and lived daily",
        ),
        weight=0.6,
    ),
    Question(
        id="ppl-005",
        block=Block.DEEP_DIVE,
        area=Area.PEOPLE,
        text="What is the biggest people or culture challenge today?",
        extractor=text_field("people.top_challenge"),
        fields=("people.top_challenge",),
        open_ended=True,
        weight=0.9,
    ),
)

TECHNOLOGY_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="tech-001",
        block=Block.DEEP_DIVE,
        area=Area.TECHNOLOGY,
        text="What is your main technology stack?",
        extractor=text_field("technology.stack"),
        fields=("technology.stack",),
        weight=0.5,
        placeholder="Python, React, Postgres on AWS",
    ),
    Question(
        id="tech-002",
        block=Block.DEEP_DIVE,
        area=Area.TECHNOLOGY,
        text="Do you have an automated CI/CD pipeline?",
        extractor=choice_field(
            "technology.cicd",
            (
                ("fully", "automated"),
                ("partial", "partial"),
                ("manual", "none"),
                ("no", "none"),
            ),
        ),
        fields=("technology.cicd",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "No, deploys are manual",
            "Partially automated",
            "Fully automated pipeline",
        ),
        weight=0.8,
    ),
    Question(
        id="tech-003",
        block=Block.DEEP_DIVE,
        area=Area.TECHNOLOGY,
        text="What is your automated test coverage?",
        extractor=percent_field("technology.test_coverage"),
        fields=("technology.test_coverage",),
        quantifiable=True,
        weight=0.7,
        placeholder="20%, 60%, 85%",
    ),
    Question(
        id="tech-004",
        block=Block.DEEP_DIVE,
        area=Area.TECHNOLOGY,
        text="How often do critical incidents or bugs hit production?",
        extractor=choice_field(
            "technology.incident_frequency",
            (
                ("week", "weekly"),
                ("month", "monthly"),
                ("year", "quarterly"),
                ("rare", "rare"),
                ("never", "rare"),
            ),
        ),
        fields=("technology.incident_frequency",),
        input_type=InputType.SINGLE_CHOICE,
        options=(
            "Weekly or more",
            "Monthly",
            "A few times a year",
            "Rarely or never",
        ),
        weight=0.9,
    ),
    Question(
        id="tech-005",
        block=Block.DEEP_DIVE,
        area=Area.TECHNOLOGY,
        text="What is the biggest technical challenge today?",
        extractor=text_field("technology.top_challenge"),
        fields=("technology.top_challenge",),
        open_ended=True,
        weight=0.9,
    ),
)

RISK_SCAN_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="risk-marketing",
        block=Block.RISK_SCAN,
        area=Area.MARKETING,
        text="Has your CAC been rising over the last 3 months?",
        extractor=_risk(Area.MARKETING),
        fields=("risk.marketing",),
        input_type=InputType.SINGLE_CHOICE,
        options=_YES_NO,
        weight=0.5,
    ),
    Question(
        id="risk-sales",
        block=Block.RISK_SCAN,
        area=Area.SALES,
        text="Is your monthly customer churn above 5%?",
        extractor=_risk(Area.SALES),
        fields=("risk.sales",),
        input_type=InputType.SINGLE_CHOICE,
        options=_YES_NO,
        weight=0.5,
    ),
    Question(
        id="risk-product",
        block=Block.RISK_SCAN,
        area=Area.PRODUCT,
        text="Is there a tech-debt backlog that is slowing product delivery?",
        extractor=_risk(Area.PRODUCT),
        fields=("risk.product",),
        input_type=InputType.SINGLE_CHOICE,
        options=_YES_NO,
        weight=0.5,
    ),
    Question(
        id="risk-operations",
        block=Block.RISK_SCAN,
        area=Area.OPERATIONS,
        text="Have you been unable to keep up with demand operationally in the last 6 months?",
        extractor=_risk(Area.OPERATIONS),
        fields=("risk.operations",),
        input_type=InputType.SINGLE_CHOICE,
        options=_YES_NO,
        weight=0.5,
    ),
    Question(
        id="risk-finance",
        block=Block.RISK_SCAN,
        area=Area.FINANCE,
        text="Is your runway shorter than 12 months?",
        extractor=_risk(Area.FINANCE),
        fields=("risk.finance",),
        input_type=InputType.SINGLE_CHOICE,
        options=_YES_NO,
        weight=0.5,
    ),
    Question(
        id="risk-people",
        block=Block.RISK_SCAN,
        area=Area.PEOPLE,
        text="Have you lost a leader or key person in the last 6 months?",
        extractor=_risk(Area.PEOPLE),
        fields=("risk.people",),
        input_type=InputType.SINGLE_CHOICE,
        options=_YES_NO,
        weight=0.5,
    ),
    Question(
        id="risk-technology",
        block=Block.RISK_SCAN,
        area=Area.TECHNOLOGY,
        text="Have you had a critical incident (downtime, data loss) in the last 3 months?",
        extractor=_risk(Area.TECHNOLOGY),
        fields=("risk.technology",),
        input_type=InputType.SINGLE_CHOICE,
        options=_YES_NO,
        weight=0.5,
    ),
)

DEEP_DIVE_QUESTIONS: dict[Area, tuple[Question, ...]] = {
    Area.MARKETING: MARKETING_QUESTIONS,
    Area.SALES: SALES_QUESTIONS,
    Area.PRODUCT: PRODUCT_QUESTIONS,
    Area.OPERATIONS: OPERATIONS_QUESTIONS,
    Area.FINANCE: FINANCE_QUESTIONS,
    Area.PEOPLE: PEOPLE_QUESTIONS,
    Area.TECHNOLOGY: TECHNOLOGY_QUESTIONS,
}

QUESTION_BANK: tuple[Question, ...] = (
    CONTEXT_QUESTIONS
    + EXPERTISE_QUESTIONS
    + tuple(q for qs in DEEP_DIVE_QUESTIONS.values() for q in qs)
    + RISK_SCAN_QUESTIONS
)


# ---------------------------------------------------------------------------
# Bank
# ---------------------------------------------------------------------------

@dataclass
class QuestionBank:
    """
    Indexed, read-only access to a question catalog.

    The default catalog is QUESTION_BANK; tests can pass their own.
    """

    questions: tuple[Question, ...] = QUESTION_BANK
    _by_id: dict[str, Question] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {}
        for q in self.questions:
            if q.id in self._by_id:
                raise ValueError(f"Duplicate question id: {q.id}")
            if not q.fields:
                raise ValueError(f"Question {q.id} has no target fields")
            self._by_id[q.id] = q

    def __len__(self) -> int:
        return len(self.questions)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._by_id

    def get_questions_by_block(
        self,
        block: Block,
        persona: Optional[Persona] = None,
    ) -> list[Question]:
        """Questions of a block in catalog order, filtered by persona."""
        return [
            q for q in self.questions
            if q.block == block and q.applies_to(persona)
        ]

    def get_question_by_id(self, question_id: str) -> Question:
        try:
            return self._by_id[question_id]
        except KeyError:
            raise QuestionNotFound(
                f"Unknown question: {question_id}",
                question_id=question_id,
            ) from None

    def get_deep_dive_questions(
        self,
        area: Area,
        persona: Optional[Persona] = None,
    ) -> list[Question]:
        """
        Raises:
            QuestionNotFound: The catalog has no deep-dive questions for
                `area` (after persona filtering).
        """
        questions = [
            q for q in self.questions
            if q.block == Block.DEEP_DIVE and q.area == area and q.applies_to(persona)
        ]
        if not questions:
            raise QuestionNotFound(
                f"No deep-dive questions for area {area.value}",
                block=Block.DEEP_DIVE.value,
                area=area.value,
            )
        return questions

    def get_risk_scan_question(self, area: Area) -> Question:
        for q in self.questions:
            if q.block == Block.RISK_SCAN and q.area == area:
                return q
        raise QuestionNotFound(
            f"No risk-scan question for area {area.value}",
            block=Block.RISK_SCAN.value,
            area=area.value,
        )

    def questions_for_session(
        self,
        block: Block,
        deep_dive_area: Optional[Area] = None,
        risk_areas: tuple[Area, ...] | list[Area] = (),
        persona: Optional[Persona] = None,
    ) -> list[Question]:
        """
        The questions a given session will be asked in `block`.

        Deep-dive and risk-scan resolve against the session's chosen
        areas and are empty until those are known. Areas without catalog
        entries are skipped, so the router records a routing gap.
        """
        if block == Block.DEEP_DIVE:
            if deep_dive_area is None:
                return []
            try:
                return self.get_deep_dive_questions(deep_dive_area, persona)
            except QuestionNotFound:
                logger.warning(
                    "deep_dive_questions_missing", extra={"area": deep_dive_area.value}
                )
                return []
        if block == Block.RISK_SCAN:
            result = []
            for area in risk_areas:
                try:
                    result.append(self.get_risk_scan_question(area))
                except QuestionNotFound:
                    logger.warning(
                        "risk_question_missing", extra={"area": area.value}
                    )
            return result
        return self.get_questions_by_block(block, persona)
