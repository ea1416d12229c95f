"""Story Forge — turn resolution core for GM-led, AI-played tabletop adventures."""
