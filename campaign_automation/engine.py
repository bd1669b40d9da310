"""Wiring for the automation engine components.

All components share one record store, one audit logger and one monitor
registry so timers, cooldowns and audit entries stay consistent across them.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from campaign_automation.dispatch.base import MessageDispatcher
from campaign_automation.domains.experiments.audit import ActionLogger, utc_now
from campaign_automation.domains.experiments.config import ExperimentConfig, default_config
from campaign_automation.domains.experiments.monitoring import PerformanceMonitor
from campaign_automation.domains.experiments.registry import MonitorRegistry
from campaign_automation.domains.experiments.variants import VariantGenerator
from campaign_automation.domains.experiments.winner import WinnerSelector
from campaign_automation.domains.optimization.config import (
    OptimizationConfig,
    default_optimization_config,
)
from campaign_automation.domains.optimization.optimizer import CampaignOptimizer
from campaign_automation.jobs.scheduled import ScheduledJobs
from campaign_automation.store.base import RecordStore


@dataclass
class AutomationEngine:
    store: RecordStore
    dispatcher: MessageDispatcher
    registry: MonitorRegistry
    audit: ActionLogger
    winner_selector: WinnerSelector
    monitor: PerformanceMonitor
    variant_generator: VariantGenerator
    optimizer: CampaignOptimizer
    jobs: ScheduledJobs


def build_engine(
    store: RecordStore,
    dispatcher: MessageDispatcher,
    registry: MonitorRegistry | None = None,
    config: ExperimentConfig = default_config,
    optimization_config: OptimizationConfig = default_optimization_config,
    clock: Callable[[], datetime] = utc_now,
    rng: random.Random | None = None,
) -> AutomationEngine:
    registry = registry or MonitorRegistry()
    audit = ActionLogger(store, clock)
    winner_selector = WinnerSelector(store, audit=audit, config=config, clock=clock)
    monitor = PerformanceMonitor(
        store,
        dispatcher,
        registry=registry,
        winner_selector=winner_selector,
        audit=audit,
        config=config,
        clock=clock,
    )
    variant_generator = VariantGenerator(store, audit=audit, config=config, rng=rng, clock=clock)
    optimizer = CampaignOptimizer(store, audit=audit, config=optimization_config, clock=clock)
    jobs = ScheduledJobs(
        store,
        dispatcher,
        monitor=monitor,
        winner_selector=winner_selector,
        optimizer=optimizer,
        clock=clock,
    )
    return AutomationEngine(
        store=store,
        dispatcher=dispatcher,
        registry=registry,
        audit=audit,
        winner_selector=winner_selector,
        monitor=monitor,
        variant_generator=variant_generator,
        optimizer=optimizer,
        jobs=jobs,
    )
