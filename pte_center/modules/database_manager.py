"""
Database Manager Module - PTE Intensive Management
Author: PTE Intensive Team
Date: October 2026

Read-only access to the Firestore collections the reminder and report
endpoints need. The Firebase app is initialized lazily on first use so that
creating the Flask app never touches the network.

Collections:
- students: student records (see Student.from_document)
- users: per-user settings, including ``discordWebhookUrl``
- tasks: task records, ``assignedTo`` holds user ids
- leads: sales leads, ``assignedTo`` holds the saler's user id
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from firebase_admin.exceptions import FirebaseError
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud.firestore_v1.base_query import FieldFilter

from .errors import DataAccessError
from .lead_manager import Lead
from .report_generator import Task
from .student_manager import Student

STORE_ERRORS = (FirebaseError, GoogleAPIError, GoogleAuthError, ValueError, OSError)


class DatabaseManager:
    """
    Firestore reader for students, leads, user settings and tasks. Any failure while
    talking to the store is raised as DataAccessError.
    """

    STUDENTS_COLLECTION = 'students'
    USERS_COLLECTION = 'users'
    TASKS_COLLECTION = 'tasks'
    LEADS_COLLECTION = 'leads'

    def __init__(self, credentials_json: Optional[str] = None,
                 credentials_path: Optional[str] = None,
                 project_id: Optional[str] = None,
                 client=None):
        """
        Initialize the database manager.

        Args:
            credentials_json (Optional[str]): Service account JSON document
            credentials_path (Optional[str]): Path to a service account file
            project_id (Optional[str]): Firebase project id override
            client: Pre-built Firestore client (skips Firebase initialization)
        """
        self.credentials_json = credentials_json
        self.credentials_path = credentials_path
        self.project_id = project_id
        self.logger = logging.getLogger(__name__)
        self._client = client

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'DatabaseManager':
        return cls(
            credentials_json=config.get('FIREBASE_CREDENTIALS_JSON'),
            credentials_path=config.get('FIREBASE_CREDENTIALS_PATH'),
            project_id=config.get('FIREBASE_PROJECT_ID'),
        )

    def _initialize_app(self):
        try:
            return firebase_admin.get_app()
        except ValueError:
            pass

        if self.credentials_json:
            cred = credentials.Certificate(json.loads(self.credentials_json.strip("'").strip('"')))
            source = 'environment'
        elif self.credentials_path:
            cred = credentials.Certificate(self.credentials_path)
            source = self.credentials_path
        else:
            cred = credentials.ApplicationDefault()
            source = 'application default credentials'

        options = {'projectId': self.project_id} if self.project_id else None
        app = firebase_admin.initialize_app(cred, options)
        self.logger.info(f"Firebase initialized from {source}")
        return app

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = firestore.client(app=self._initialize_app())
            except STORE_ERRORS as e:
                self.logger.error(f"Firestore initialization failed: {str(e)}")
                raise DataAccessError('Document store is unavailable', detail=str(e)) from e
        return self._client

    def get_all_students(self) -> List[Student]:
        """
        Load every student record.

        Returns:
            List[Student]: Students in store order
        """
        try:
            documents = self.client.collection(self.STUDENTS_COLLECTION).stream()
            students = [Student.from_document(doc.id, doc.to_dict()) for doc in documents]
        except STORE_ERRORS as e:
            self.logger.error(f"Failed to load students: {str(e)}")
            raise DataAccessError('Failed to load students', detail=str(e)) from e

        self.logger.info(f"Loaded {len(students)} students")
        return students

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            snapshot = self.client.collection(self.USERS_COLLECTION).document(user_id).get()
        except STORE_ERRORS as e:
            self.logger.error(f"Failed to load user {user_id}: {str(e)}")
            raise DataAccessError('Failed to load user settings', detail=str(e)) from e

        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    def get_webhook_url(self, user_id: str) -> Optional[str]:
        """Return the user's configured Discord webhook URL, if any."""
        user = self.get_user(user_id) or {}
        url = user.get('discordWebhookUrl')
        if isinstance(url, str) and url.strip():
            return url.strip()
        return None

    def get_tasks_assigned_to(self, user_id: str) -> List[Task]:
        """
        Load every task assigned to a user.

        Args:
            user_id (str): Principal id

        Returns:
            List[Task]: Assigned tasks
        """
        try:
            query = self.client.collection(self.TASKS_COLLECTION).where(
                filter=FieldFilter('assignedTo', 'array_contains', user_id)
            )
            return [Task.from_document(doc.id, doc.to_dict()) for doc in query.stream()]
        except STORE_ERRORS as e:
            self.logger.error(f"Failed to load tasks for user {user_id}: {str(e)}")
            raise DataAccessError('Failed to load tasks', detail=str(e)) from e

    def get_user_name(self, user_id: str) -> Optional[str]:
        """Return the display name stored on a user's document, if any."""
        if not user_id:
            return None
        user = self.get_user(user_id) or {}
        return user.get('name') or user.get('email') or None

    def get_all_leads(self) -> List[Lead]:
        """
        Load every lead record.

        Returns:
            List[Lead]: Leads in store order
        """
        try:
            documents = self.client.collection(self.LEADS_COLLECTION).stream()
            leads = [Lead.from_document(doc.id, doc.to_dict()) for doc in documents]
        except STORE_ERRORS as e:
            self.logger.error(f"Failed to load leads: {str(e)}")
            raise DataAccessError('Failed to load leads', detail=str(e)) from e

        self.logger.info(f"Loaded {len(leads)} leads")
        return leads
