"""Plan Bot - posts Terraform plans to pull requests.

Runs inside a GitHub Action and comments on the PR with:
  - Outcomes of the fmt, init and plan steps
  - The rendered plan, split across as many comments as it needs
  - Who triggered the run and from where
"""
