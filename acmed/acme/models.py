#!/usr/bin/env python3
#
# acmed/acme/models.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Pydantic views of ACME resources. Never persisted."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = ["Challenge", "Authorization", "Order", "problem_text"]


def problem_text(problem: Optional[dict]) -> str:
	"""Render an ACME problem document as 'detail (type)'."""
	if not problem:
		return ""
	detail = problem.get("detail", "")
	error_type = problem.get("type", "")
	if detail and error_type:
		return f"{detail} ({error_type})"
	return detail or error_type


class Challenge(BaseModel):
	"""One challenge offered inside an authorization."""
	model_config = ConfigDict(extra="ignore")

	type: str
	url: str
	token: str = ""
	status: str = "pending"
	error: Optional[dict] = None


class Authorization(BaseModel):
	"""CA-side validation state for one identifier."""
	model_config = ConfigDict(extra="ignore")

	uri: str = ""
	status: str
	identifier: dict = Field(default_factory=dict)
	challenges: list[Challenge] = Field(default_factory=list)
	expires: Optional[str] = None

	def challenge(self, challenge_type: str) -> Optional[Challenge]:
		"""First offered challenge of challenge_type, if any."""
		for chal in self.challenges:
			if chal.type == challenge_type:
				return chal
		return None

	def failure_detail(self) -> str:
		"""Best available explanation for a failed authorization."""
		for chal in self.challenges:
			if chal.error:
				return problem_text(chal.error)
		return f"authorization {self.status}"


class Order(BaseModel):
	"""Certificate order."""
	model_config = ConfigDict(extra="ignore")

	uri: str = ""
	status: str
	authorizations: list[str] = Field(default_factory=list)
	finalize: str = ""
	certificate: Optional[str] = None
	error: Optional[dict] = None
