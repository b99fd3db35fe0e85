"""
Failed Document Sink
Persists the failure ledger as one extended-JSON record per line
"""
import logging
from pathlib import Path
from typing import Optional, Union

from bson import json_util

from .ledger import FailureLedger

logger = logging.getLogger(__name__)


class FailedDocumentSink:
    """Writes failed documents to a JSON-lines file; writes nothing when there are none"""

    def __init__(self, output_path: Union[str, Path]):
        if not str(output_path):
            raise ValueError("Failed documents output path is required")
        self.output_path = Path(output_path)

    def write(self, ledger: FailureLedger) -> Optional[Path]:
        """Hand the ledger off and return the written path, or None if nothing failed"""
        ledger.seal()

        if not ledger:
            logger.debug("No failed documents to write")
            return None

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.output_path, 'w', encoding='utf-8') as f:
            for document in ledger:
                f.write(json_util.dumps(document))
                f.write('\n')

        logger.info(f"💾 Wrote {len(ledger):,} failed documents to {self.output_path}")
        return self.output_path
