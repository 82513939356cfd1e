"""Discord bot: message acquisition, puzzle synthesis and ingestion."""
