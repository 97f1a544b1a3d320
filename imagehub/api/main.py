"""
Interactive CLI entrypoint for imagehub.

Architectural role:
- Provides a terminal interface over `ImageGenerationService`.
- Displays enabled providers at startup.

Request lifecycle (per line):
1. Read a single line from stdin.
2. Handle local commands (`exit`/`quit`, `/providers`, `/provider <key>`,
   `/all`, `/first`).
3. Treat any other text as a prompt for the active generation mode.
4. Print one line per outcome.

Input validation behavior:
- Empty input is ignored.
- `/provider` validates the key against enabled providers.

Error handling strategy:
- EOF and keyboard interrupts end the loop without traceback output.
- Generation failures are printed from their outcomes.
"""

from dotenv import load_dotenv

load_dotenv()

import sys

from imagehub.api.log_setup import configure_logging
from imagehub.config.provider_config import build_generation_service, load_config
from imagehub.image.errors import AllProvidersFailedError
from imagehub.image.models import GenerationOutcome
from imagehub.image.service import ImageGenerationService


# =========================================================
# UTF-8 SAFE STDOUT
# =========================================================

if hasattr(sys.stdout, "reconfigure"):
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="ignore")
    except (AttributeError, ValueError):
        pass


def format_outcome(outcome: GenerationOutcome) -> str:
    if outcome.success:
        return f"[{outcome.provider_name}] OK  {outcome.path}"
    return f"[{outcome.provider_name}] FAILED  {outcome.error}"


def run_prompt(
    service: ImageGenerationService, prompt: str, provider: str | None, mode: str
) -> list[str]:
    """Run one prompt and return printable lines."""
    if provider:
        return [format_outcome(service.generate_one(provider, prompt))]
    if mode == "first_success":
        try:
            return [format_outcome(service.generate_first_success(prompt))]
        except AllProvidersFailedError as err:
            return [format_outcome(o) for o in err.outcomes] + [str(err)]
    return [format_outcome(o) for o in service.generate_all(prompt)]


# =========================================================
# MAIN APPLICATION LOOP
# =========================================================

def main():
    config = load_config()
    log_file = configure_logging(config.image_gen.log_dir)
    service = build_generation_service(config)
    enabled = [d.key for d in service.registry.enabled()]

    provider = None
    mode = "all"

    print("imagehub started. (Type 'exit' to quit)\n")
    print("-" * 60)
    print(f"Enabled providers: {', '.join(enabled) or 'none'}")
    print(f"Output directory:  {config.image_gen.output_dir}")
    print(f"Log file:          {log_file}")
    print("-" * 60)

    while True:
        try:
            line = input("Prompt: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nShutting down.")
            break

        if not line:
            continue

        if line.lower() in ("exit", "quit"):
            print("Shutting down.")
            break

        if line == "/providers":
            print(", ".join(enabled) or "none")
            continue

        if line.startswith("/provider "):
            key = line.split(maxsplit=1)[1].strip()
            if key not in enabled:
                print(f"Unknown or disabled provider: {key}")
                continue
            provider = key
            print(f"Active provider: {provider}")
            continue

        if line in ("/all", "/first"):
            provider = None
            mode = "all" if line == "/all" else "first_success"
            print(f"Mode: {mode}")
            continue

        for output in run_prompt(service, line, provider, mode):
            print(output)
        print("\n" + "-" * 60 + "\n")


if __name__ == "__main__":
    main()
