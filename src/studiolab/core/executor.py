"""Run execution pipeline.

:class:`RunExecutor` turns a pending run into stored results by walking the
template's steps in order:

1. The input set's uploaded images become the references for step one.
2. ``{{product}}`` / ``{{products}}`` in each prompt are replaced with a
   one-line-per-product description of the input set's catalog products.
3. Each step calls the image client; the first generated image is written
   to the outputs store and recorded as the step's result.
4. All images returned by a step become the references for the next step.
5. The first failing step records an error result and ends the chain.

Execution is synchronous: the call returns once every step has finished or
the chain has stopped.  Executing a run again replaces its previous results,
so a run never holds more than one result per step.
"""

from __future__ import annotations

import json
import logging

from studiolab.core.image_client import GeneratedImage, GenerationResult
from studiolab.core.runs import RunStore
from studiolab.core.storage import FileStorage, StorageError

logger = logging.getLogger(__name__)

PRODUCT_PLACEHOLDERS = ("{{product}}", "{{products}}")
STEP_FAILURE_MESSAGE = "One or more steps failed"


class RunAlreadyRunningError(Exception):
    """Raised when execution is requested for a run that is already running."""

    pass


def build_product_context(products: list[dict]) -> str:
    """Describe catalog products for prompt substitution.

    Each product becomes ``"<name> (<category>): <metadata JSON>"``; lines
    are joined with newlines.

    Args:
        products: Product dictionaries from an input set

    Returns:
        The product description (empty string when there are no products)
    """
    return "\n".join(
        f"{p['name']} ({p['category']}): {json.dumps(p.get('metadata') or {})}"
        for p in products
    )


def render_prompt(prompt: str, product_context: str) -> str:
    """Replace every product placeholder in *prompt* with *product_context*."""
    for placeholder in PRODUCT_PLACEHOLDERS:
        prompt = prompt.replace(placeholder, product_context)
    return prompt


class RunExecutor:
    """Execute runs step by step against an image generation client.

    Attributes:
        runs: Run/result persistence
        storage: Upload and output file storage
        image_client: Object with a ``generate(...)`` method returning
            :class:`GenerationResult` (normally a ``GeminiImageClient``)
    """

    def __init__(self, runs: RunStore, storage: FileStorage, image_client) -> None:
        self.runs = runs
        self.storage = storage
        self.image_client = image_client

    def _load_input_images(self, images: list[dict]) -> list[GeneratedImage]:
        """Read the input set's uploads, skipping any that cannot be read."""
        loaded = []
        for image in images:
            try:
                data = self.storage.read_upload(image["path"])
            except (StorageError, OSError) as e:
                logger.error(f"Failed to read image {image['path']}: {e}")
                continue
            loaded.append(GeneratedImage(data=data, mime_type=image["mime_type"]))
        return loaded

    def _run_step(
        self,
        run_id: str,
        step: dict,
        prompt: str,
        references: list[GeneratedImage],
    ) -> GenerationResult | None:
        """Generate and persist one step.

        Any exception raised while generating, writing the output, or
        recording the result is stored as the step's error result.

        Returns:
            The successful generation result, or ``None`` when the step
            failed (an error result has been stored in that case)
        """
        try:
            return self._generate_step(run_id, step, prompt, references)
        except Exception as e:
            logger.error(f"Error executing step {step['order']} of run {run_id}: {e}")
            self.runs.add_result(run_id, step["order"], "", {"error": str(e) or "Unknown error"})
            return None

    def _generate_step(
        self,
        run_id: str,
        step: dict,
        prompt: str,
        references: list[GeneratedImage],
    ) -> GenerationResult | None:
        result = self.image_client.generate(
            prompt=prompt,
            reference_images=references,
            model=step["model"],
            aspect_ratio=step["aspect_ratio"],
            image_size=step["image_size"],
            temperature=step["temperature"],
        )

        if not result.success or not result.images:
            logger.warning(
                "Step %s of run %s produced no image: %s",
                step["order"],
                run_id,
                result.error,
            )
            self.runs.add_result(
                run_id,
                step["order"],
                "",
                {"error": result.error or "No image generated", "text": result.text},
            )
            return None

        first = result.images[0]
        output_path = self.storage.save_output(run_id, step["order"], first.data, first.mime_type)
        self.runs.add_result(
            run_id,
            step["order"],
            output_path,
            {
                "model": step["model"],
                "aspect_ratio": step["aspect_ratio"],
                "image_size": step["image_size"],
                "temperature": step["temperature"],
                "prompt": prompt,
                "text": result.text,
            },
        )
        return result

    def execute(self, run_id: str) -> dict | None:
        """Execute a run and return its updated summary.

        Args:
            run_id: Run UUID

        Returns:
            The run summary (input set/template names and ordered results),
            or ``None`` if the run does not exist

        Raises:
            RunAlreadyRunningError: If the run is currently running
            Exception: Any unexpected error after the run was marked
                ``running``; the run is marked ``failed`` before re-raising
        """
        run = self.runs.get_run(run_id)
        if run is None:
            return None
        if run["status"] == "running":
            raise RunAlreadyRunningError("Run is already in progress")

        removed = self.runs.clear_results(run_id)
        if removed:
            self.storage.delete_run_outputs(run_id)
            logger.info("Cleared %d previous results of run %s", removed, run_id)
        self.runs.set_status(run_id, "running")

        steps = run["template"]["steps"]
        logger.info("Executing run %s (%d steps)", run_id, len(steps))

        try:
            references = self._load_input_images(run["input_set"]["images"])
            product_context = build_product_context(run["input_set"]["products"])

            failed = False
            for step in steps:
                prompt = render_prompt(step["prompt"], product_context)
                result = self._run_step(run_id, step, prompt, references)
                if result is None:
                    failed = True
                    break
                references = result.images

            if failed:
                self.runs.set_status(run_id, "failed", STEP_FAILURE_MESSAGE)
            else:
                self.runs.set_status(run_id, "completed")
            logger.info("Run %s finished: %s", run_id, "failed" if failed else "completed")
        except Exception as e:
            logger.exception("Run %s aborted", run_id)
            self.runs.set_status(run_id, "failed", str(e) or "Unknown error")
            raise

        return self.runs.get_run_summary(run_id)
