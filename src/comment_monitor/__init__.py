"""Watch document comments and hand new replies to a tool-using agent."""
