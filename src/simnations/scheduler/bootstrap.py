"""Wire the economic job from environment, jobs.yaml and MongoDB."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from simnations.bot.discord import DiscordAlerter
from simnations.configs.economic_constants import EconomicJobSettings
from simnations.configs.env_config import Env
from simnations.jobs.economic_update import EconomicBatchExecutor
from simnations.mongo.base import MongoClient
from simnations.mongo.state_repository import MongoStateRepository
from simnations.scheduler.controller import EconomicJobController
from simnations.scheduler.scheduler import CronSchedule, load_economic_job_settings
from simnations.utils.logger.logger import Logger


@dataclass
class EconomicJobRuntime:
    """The controller plus the resources it borrows, torn down together."""

    controller: EconomicJobController
    repository: MongoStateRepository
    alerter: Optional[DiscordAlerter] = None

    async def close(self) -> None:
        self.controller.stop()
        try:
            if self.alerter is not None:
                await self.alerter.shutdown()
        finally:
            self.repository.close()


async def bootstrap_economic_job(
    logger: Logger,
    *,
    settings: Optional[EconomicJobSettings] = None,
    mongo: Optional[MongoClient] = None,
) -> EconomicJobRuntime:
    """Build a ready-to-start controller.

    :param logger: Application logger handed to the controller.
    :param settings: Explicit settings; read from ``JOBS_CONFIG`` otherwise.
    :param mongo: Explicit client; built from ``MONGO_URI`` otherwise.
    :return: Runtime holding the (not yet started) controller.
    :raises ValueError: On invalid job configuration.
    :raises RepositoryError: If the state repository is unreachable; fatal at boot.
    """
    if settings is None:
        settings = load_economic_job_settings(
            Path(Env.JOBS_CONFIG), etl_logger=logger, schedule_override=Env.ECONOMIC_JOB_SCHEDULE
        )
    schedule = CronSchedule.from_settings(settings)

    repository = MongoStateRepository(mongo or MongoClient(), Env.STATES_COLLECTION)
    try:
        await repository.ping()
    except Exception:
        repository.close()
        raise

    alerter = None
    if Env.ECONOMIC_JOB_ALERT_WEBHOOK:
        alerter = DiscordAlerter(webhook_url=Env.ECONOMIC_JOB_ALERT_WEBHOOK, username="Economic Job Alerts")
        await alerter.start()

    controller = EconomicJobController(
        EconomicBatchExecutor(repository, settings=settings),
        schedule,
        logger=logger,
        settings=settings,
        alerter=alerter,
    )
    return EconomicJobRuntime(controller=controller, repository=repository, alerter=alerter)
