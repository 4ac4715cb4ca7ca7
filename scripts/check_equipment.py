"""Report equipment whose stored status disagrees with its loan transactions.

Exit code 1 when any unit is inconsistent, so it can run from cron.
"""

from __future__ import annotations

import importlib
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from config import get_settings_module

from src.motac_irm.motac_irm.common.log import get_logger, setup_logging
from src.motac_irm.motac_irm.container import build_container

logger = get_logger("scripts.check_equipment")


def main() -> int:
    settings = importlib.import_module(get_settings_module())
    setup_logging(level=getattr(settings, "LOG_LEVEL", "INFO"))
    container = build_container(db_config=dict(settings.DB_CONFIG))

    inconsistent = container.equipment_service.find_inconsistent()
    for eq in inconsistent:
        logger.warning(
            f"Equipment {eq.equipment_id} ({eq.serial_number}) stored as {eq.status.value} disagrees with its loans",
            extra={"operation": "equipment.check", "entity_type": "equipment", "entity_id": eq.equipment_id},
        )
    logger.info(f"Checked equipment: {len(inconsistent)} inconsistent")
    return 1 if inconsistent else 0


if __name__ == "__main__":
    sys.exit(main())
