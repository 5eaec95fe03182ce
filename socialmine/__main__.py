"""Entry point for running one controller action"""
import asyncio
import json
import logging
import os
import sys
import traceback
from dataclasses import asdict

from socialmine.config import Settings, settings
from socialmine.controller import WorkflowController
from socialmine.models.report import ActionReport
from socialmine.notifications import NotificationState
from socialmine.services.wallet import prompt_approval

ACTIONS = ('refresh', 'submit', 'decrypt', 'check')

logging.basicConfig(level=logging.INFO, format='%(message)s')
logger = logging.getLogger(__name__)

def build_report(action: str, controller: WorkflowController, ok: bool,
                 value=None, error_kind=None) -> ActionReport:
    """Collect the controller's visible state after an action"""
    snapshot = controller.snapshot
    return ActionReport(
        action=action,
        ok=ok,
        value=value,
        error_kind=error_kind.value if error_kind else None,
        notification=asdict(controller.notification),
        stats=asdict(snapshot.stats),
        leaderboard=[asdict(entry) for entry in snapshot.leaderboard],
        records=[asdict(record) for record in snapshot.records]
    )

def log_notification(state: NotificationState) -> None:
    if state.visible:
        logger.info(f"[{state.kind.value}] {state.message}")

async def run_action(config: Settings, controller: WorkflowController) -> ActionReport:
    """Run the configured action against an initialized controller"""
    action = config.ACTION.lower()
    if action not in ACTIONS:
        raise ValueError(f"Unsupported action: {config.ACTION}")

    controller.notifier.subscribe(log_notification)

    if action == 'check':
        available = await controller.check_availability()
        return build_report(action, controller, available, value=available)

    initialized = await controller.initialize()

    if action == 'refresh':
        # initialize() already loaded the records when it succeeded
        if not initialized:
            await controller.refresh()
        return build_report(action, controller, True, value=len(controller.snapshot))

    if action == 'submit':
        controller.update_draft(
            name=config.RECORD_NAME or '',
            value=config.RECORD_VALUE or '',
            description=config.RECORD_DESCRIPTION
        )
        result = await controller.submit_draft()
        return build_report(action, controller, result.ok, result.record_id, result.error_kind)

    if not config.RECORD_ID:
        raise ValueError("RECORD_ID is required for decrypt")
    result = await controller.decrypt(config.RECORD_ID)
    return build_report(action, controller, result.ok, result.value, result.error_kind)

def run() -> None:
    """Run one action and write its report."""
    try:
        # Log config (excluding sensitive data)
        safe_config = settings.model_dump(exclude={'SIGNER_PRIVATE_KEY', 'RELAYER_API_KEY'})
        logger.info("Using configuration:")
        logger.info(json.dumps(safe_config, indent=2))

        approve = None if settings.AUTO_APPROVE else prompt_approval
        controller = WorkflowController.from_settings(settings, approve)
        report = asyncio.run(run_action(settings, controller))

        # Save results
        os.makedirs(settings.OUTPUT_DIR, exist_ok=True)
        output_path = os.path.join(settings.OUTPUT_DIR, "results.json")
        with open(output_path, 'w') as f:
            json.dump(report.model_dump(mode='json'), f, indent=2)

        logger.info(f"Action complete: {report.model_dump(mode='json')}")
        if not report.ok:
            sys.exit(1)

    except Exception as e:
        logger.error(f"Error during {settings.ACTION}: {e}")
        traceback.print_exc()
        sys.exit(1)

if __name__ == "__main__":
    run()
