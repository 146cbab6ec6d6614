"""
CLI para ejecutar el scheduler de rutinas.

Uso:
    python -m remitbridge.scheduler.tick                 # un tick y salir
    python -m remitbridge.scheduler.tick --routine <id>  # ejecutar una rutina ahora
    python -m remitbridge.scheduler.tick --serve         # loop periódico (Ctrl+C para parar)
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from remitbridge.api.services import Services, get_services
from remitbridge.config import configure_logging


async def _run_once(services: Services) -> int:
    results = await services.scheduler.tick()
    print(f"Checked: {results['checked']}")
    print(f"Executed: {results['executed']}")
    print(f"Skipped (locked): {results['skipped_locked']}")
    print(f"Skipped (not due): {results['skipped_not_due']}")
    if results["errors"]:
        print(f"Errors: {len(results['errors'])}")
        for error in results["errors"]:
            print(f"  - {error['routine_id']}: {error['error']}")
    return 0


async def _run_routine(services: Services, routine_id: str) -> int:
    result = await services.runner.execute_routine(routine_id)
    print(f"Success: {result.success}")
    print(f"Files processed: {result.files_processed}")
    print(f"Errors: {result.errors}")
    if result.skipped_reason:
        print(f"Skipped: {result.skipped_reason}")
    return 0 if result.success else 1


async def _serve(services: Services) -> int:
    services.scheduler.start()
    try:
        while services.scheduler.running:
            await asyncio.sleep(1)
    finally:
        await services.scheduler.stop()
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Ejecuta tick de rutinas de importación")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--serve", action="store_true", help="Mantener el scheduler corriendo")
    group.add_argument("--routine", type=str, help="Ejecutar una rutina específica ahora")
    parser.add_argument("--log-level", type=str, default=None, help="Nivel de logging (INFO, DEBUG...)")

    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    services = get_services()

    try:
        if args.serve:
            return asyncio.run(_serve(services))
        if args.routine:
            return asyncio.run(_run_routine(services, args.routine))
        return asyncio.run(_run_once(services))
    except KeyboardInterrupt:
        print("Interrumpido")
        return 130
    except Exception as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
