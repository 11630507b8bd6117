from __future__ import annotations

from .base import BlueprintRegistry, NodeBlueprint, NodeKind


AUTOMATION_BLUEPRINTS: tuple[NodeBlueprint, ...] = (
    NodeBlueprint(
        code="ACP",
        name="AI Content Planner",
        kind=NodeKind.WEBHOOK,
        sequence=1,
        endpoint_template="/workflow/acp",
        headline="Ideation",
        description="Generates new social-media post ideas from creative briefs or trending topics for every active client.",
        status_label="Runs daily or on-demand from latest briefs.",
    ),
    NodeBlueprint(
        code="ENS",
        name="Engagement Scheduler",
        kind=NodeKind.WEBHOOK,
        sequence=2,
        dependencies=("ACP",),
        endpoint_template="/workflow/ens",
        headline="Timing Intelligence",
        description="Finds optimal posting windows for approved ideas from audience analytics and historic performance.",
        status_label="Syncs after each planning run with refreshed analytics.",
    ),
    NodeBlueprint(
        code="MDF",
        name="Media Fetcher",
        kind=NodeKind.SOURCE_SYNC,
        sequence=3,
        dependencies=("ENS",),
        headline="Asset Ingestion",
        description="Scans connected Dropbox folders, downloads only new videos and stages them on local storage.",
        status_label="Pauses gracefully and retries every 30 minutes if Dropbox is unreachable.",
        source_paths=("/Clients",),
    ),
    NodeBlueprint(
        code="ACO",
        name="Account Connector",
        kind=NodeKind.WEBHOOK,
        sequence=4,
        dependencies=("MDF",),
        endpoint_template="/workflow/aco",
        headline="Credential Management",
        description="Validates and refreshes TikTok OAuth tokens and distributes credentials downstream.",
        status_label="Keeps TikTok OAuth lifecycle healthy across automations.",
    ),
    NodeBlueprint(
        code="ATR",
        name="Automation Rules",
        kind=NodeKind.WEBHOOK,
        sequence=5,
        dependencies=("ACO",),
        endpoint_template="/workflow/atr",
        headline="Publishing Guardrails",
        description="Validates cadence, asset freshness and queue eligibility before approving posts for publishing.",
        status_label="Guards publishing logic with configurable constraints.",
    ),
    NodeBlueprint(
        code="PUB",
        name="Publisher",
        kind=NodeKind.WEBHOOK,
        sequence=6,
        dependencies=("ATR",),
        endpoint_template="/workflow/pub",
        headline="Automated Launch",
        description="Publishes approved videos to TikTok according to the computed schedule.",
        status_label="Executes the Engagement Scheduler timeline with compliance safeguards.",
    ),
    NodeBlueprint(
        code="PTR",
        name="Performance Tracker",
        kind=NodeKind.WEBHOOK,
        sequence=7,
        dependencies=("PUB",),
        endpoint_template="/workflow/ptr",
        headline="Analytics & Reporting",
        description="Collects TikTok performance analytics and produces weekly dashboards and Dropbox exports.",
        status_label="Refreshes weekly analytics with commentary.",
    ),
)


def register_builtin_nodes(registry: BlueprintRegistry) -> None:
    for blueprint in AUTOMATION_BLUEPRINTS:
        registry.register(blueprint)
