"""Payment proofs and their processing pipeline."""
