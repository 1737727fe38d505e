"""Building blocks: process launcher, readiness reader, deadline coordinator."""
