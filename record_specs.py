import math
import re
from datetime import date

import pandas as pd

# --- Lookup (dropdown) categories and their seed values ---
LOOKUP_SEED = {
    "designations": ["Professor", "Associate Professor", "Assistant Professor", "Head of Department", "Dean"],
    "bookTypes": ["Textbook", "Reference Book", "Edited Book", "Chapter in Edited Book", "Monograph"],
    "journalAuthorTypes": ["Single Author", "First Author", "Corresponding Author", "Co-Author"],
    "journalEditedTypes": ["Journal Article", "Review Article", "Conference Proceeding", "Book Review", "Editorial"],
    "resPubLevels": ["International", "National", "State", "University", "College", "Local"],
    "projectStatuses": ["Submitted", "Sanctioned", "Ongoing", "Completed"],
    "projectLevels": ["International", "National", "State", "University"],
    "fundingAgencies": ["UGC", "DST", "SERB", "CSIR", "DBT", "ICSSR", "AICTE", "ICMR", "University"],
    "projectNatures": ["Major Research Project", "Minor Research Project", "Consultancy Project", "Industry Sponsored"],
    "patentStatuses": ["Filed", "Published", "Granted", "Commercialised"],
    "eContentTypes": ["e-PG Pathshala", "SWAYAM MOOC", "NPTEL", "Institutional LMS", "Other"],
    "typeEcontentValues": ["Content Writer", "Subject Matter Expert", "Course Coordinator", "Reviewer"],
    "collaborationsLevels": ["International", "National", "State", "University"],
    "collaborationsOutcomes": ["Research Publication", "Student Exchange", "Faculty Exchange", "Joint Project", "Training"],
    "collaborationsTypes": ["MoU", "Linkage", "Collaboration", "Industry Partnership"],
    "academicVisitRoles": ["Visiting Professor", "Resource Person", "Adjunct Faculty", "Examiner"],
    "financialSupportTypes": ["Travel Grant", "Registration Fee", "Membership Fee", "Workshop Support"],
    "jrfSrfTypes": ["JRF", "SRF", "Project Fellow", "Research Associate"],
    "phdGuidanceStatuses": ["Registered", "Pre-Submission", "Thesis Submitted", "Awarded"],
    "refresherTypes": ["Refresher Course", "Orientation Programme", "Faculty Development Programme", "Short Term Course", "Summer School"],
    "academicProgrammes": ["Conference", "Seminar", "Workshop", "Symposium", "Webinar"],
    "participantTypes": ["Organiser", "Coordinator", "Resource Person", "Participant"],
    "reportYears": ["2021-22", "2022-23", "2023-24", "2024-25", "2025-26"],
    "committeeLevels": ["University", "Faculty", "Department", "State", "National"],
    "talksProgrammeTypes": ["Invited Talk", "Keynote Address", "Guest Lecture", "Panel Discussion"],
    "talksParticipantTypes": ["Speaker", "Chairperson", "Panelist", "Session Chair"],
    "awardFellowLevels": ["International", "National", "State", "University", "College"],
    "sponserNames": ["NSS", "NCC", "University", "Government", "NGO"],
    "degreeTypes": ["Ph.D.", "M.Phil.", "Post Graduate", "Graduate", "Diploma"],
    "permanentDesignations": ["Professor", "Associate Professor", "Assistant Professor"],
    "temporaryDesignations": ["Temporary Assistant Professor", "Visiting Faculty", "Guest Faculty"],
    "eventStudentBodyLevels": ["International", "National", "State", "University", "Department"],
}

FACULTY_SEED = [
    {"Fid": 1, "Fname": "Faculty of Science", "departments": ["Physics", "Chemistry", "Mathematics", "Botany"]},
    {"Fid": 2, "Fname": "Faculty of Technology & Engineering", "departments": ["Computer Science and Engineering", "Civil Engineering", "Electrical Engineering"]},
    {"Fid": 3, "Fname": "Faculty of Arts", "departments": ["English", "History", "Economics"]},
    {"Fid": 4, "Fname": "Faculty of Commerce", "departments": ["Accountancy", "Business Economics"]},
]

USER_TYPES = ["admin", "faculty", "department", "teacher"]


# --- Teacher record kinds ---
# Keyed by the URL path below /api/teacher/.
TEACHER_RECORDS = {
    "publication/journals": {
        "collection": "journals",
        "label": "Journal",
        "body_key": "journal",
        "id_key": "journalId",
        "list_key": "journals",
        "required": ["title", "authors", "author_type", "level", "type"],
        "required_message": "Title, authors, author type, level, and type are required",
        "fields": ["journal_name", "author_num", "issn", "isbn", "volume_num", "page_num", "month_year",
                   "DOI", "impact_factor", "h_index", "peer_reviewed", "in_scopus", "in_ugc",
                   "in_clarivate", "in_oldUGCList", "paid", "submit_date", "Image"],
        "numeric": ["author_num", "impact_factor", "h_index"],
        "boolean": ["peer_reviewed", "in_scopus", "in_ugc", "in_clarivate", "in_oldUGCList", "paid"],
        "dates": ["submit_date"],
        "lookups": {"author_type": "journalAuthorTypes", "level": "resPubLevels", "type": "journalEditedTypes"},
        "doc_field": "Image",
        "folder": "journal-articles",
        "title_field": "title",
        "date_field": "submit_date",
    },
    "publication/books": {
        "collection": "books",
        "label": "Book",
        "body_key": "book",
        "id_key": "bookId",
        "list_key": "books",
        "required": ["title", "authors", "publishing_level", "book_type", "author_type"],
        "required_message": "Title, authors, publishing level, book type, and author type are required",
        "fields": ["chap_count", "cha", "isbn", "publisher_name", "place", "paid", "edited", "submit_date", "Image"],
        "numeric": ["chap_count"],
        "boolean": ["paid", "edited"],
        "dates": ["submit_date"],
        "lookups": {"publishing_level": "resPubLevels", "book_type": "bookTypes", "author_type": "journalAuthorTypes"},
        "doc_field": "Image",
        "folder": "books",
        "title_field": "title",
        "date_field": "submit_date",
    },
    "publication/papers": {
        "collection": "papers",
        "label": "Paper",
        "body_key": "paper",
        "id_key": "paperId",
        "list_key": "papers",
        "required": ["title_of_paper", "authors", "level"],
        "required_message": "Title of paper, authors, and level are required",
        "fields": ["theme", "organising_body", "place", "date", "mode", "Image"],
        "dates": ["date"],
        "lookups": {"level": "resPubLevels"},
        "doc_field": "Image",
        "folder": "papers",
        "title_field": "title_of_paper",
        "date_field": "date",
    },
    "research": {
        "collection": "research_projects",
        "label": "Project",
        "body_key": "project",
        "id_key": "projectId",
        "list_key": "projects",
        "required": ["title", "funding_agency", "proj_nature", "status", "start_date"],
        "required_message": "Title, funding agency, project nature, status, and start date are required",
        "fields": ["grant_sanctioned", "grant_received", "grant_year", "grant_sealed", "proj_level", "duration", "Pdf"],
        "numeric": ["grant_sanctioned", "grant_received", "grant_year", "duration"],
        "boolean": ["grant_sealed"],
        "dates": ["start_date"],
        "lookups": {"funding_agency": "fundingAgencies", "proj_nature": "projectNatures",
                    "status": "projectStatuses", "proj_level": "projectLevels"},
        "doc_field": "Pdf",
        "folder": "research-projects",
        "title_field": "title",
        "date_field": "start_date",
    },
    "research-contributions/patents": {
        "collection": "patents",
        "label": "Patent",
        "body_key": "patent",
        "id_key": "patentId",
        "list_key": "patents",
        "required": ["title", "level", "status", "date"],
        "required_message": "Title, level, status, and date are required",
        "fields": ["PatentApplicationNo", "Tech_Licence", "Earnings_Generate", "doc"],
        "numeric": ["Earnings_Generate"],
        "dates": ["date"],
        "lookups": {"level": "resPubLevels", "status": "patentStatuses"},
        "doc_field": "doc",
        "folder": "patents",
        "title_field": "title",
        "date_field": "date",
    },
    "research-contributions/policy": {
        "collection": "policy_documents",
        "label": "Policy",
        "body_key": "policy",
        "id_key": "policyId",
        "list_key": "policies",
        "required": ["title", "level", "organisation", "date"],
        "required_message": "Title, Level, Organisation, and Date are required",
        "fields": ["doc"],
        "dates": ["date"],
        "lookups": {"level": "resPubLevels"},
        "doc_field": "doc",
        "folder": "policy",
        "title_field": "title",
        "date_field": "date",
    },
    "research-contributions/e-content": {
        "collection": "e_content",
        "label": "eContent",
        "body_key": "eContent",
        "id_key": "eContentId",
        "list_key": "eContents",
        "required": ["title", "Brief_Details", "Quadrant", "Publishing_date", "Publishing_Authorities"],
        "required_message": "Title, Brief Details, Quadrant, Publishing Date, and Publishing Authorities are required",
        "fields": ["link", "type_econtent", "e_content_type", "doc"],
        "numeric": ["Quadrant"],
        "dates": ["Publishing_date"],
        "lookups": {"type_econtent": "typeEcontentValues", "e_content_type": "eContentTypes"},
        "doc_field": "doc",
        "folder": "e-content",
        "title_field": "title",
        "date_field": "Publishing_date",
    },
    "research-contributions/consultancy": {
        "collection": "consultancy",
        "label": "Consultancy",
        "body_key": "consultancy",
        "id_key": "consultancyId",
        "list_key": "consultancies",
        "required": ["name", "collaborating_inst", "address", "Start_Date"],
        "required_message": "Name, Collaborating Institute, Address, and Start Date are required",
        "fields": ["duration", "amount", "outcome", "submit_date", "doc"],
        "numeric": ["duration", "amount"],
        "dates": ["Start_Date", "submit_date"],
        "doc_field": "doc",
        "folder": "consultancy",
        "title_field": "name",
        "date_field": "Start_Date",
    },
    "research-contributions/collaborations": {
        "collection": "collaborations",
        "label": "Collaboration",
        "body_key": "collaboration",
        "id_key": "collaborationId",
        "list_key": "collaborations",
        "required": ["collaborating_inst", "category"],
        "required_message": "Collaborating Institute and Category are required",
        "fields": ["collab_name", "address", "details", "collab_outcome", "collab_status", "starting_date",
                   "duration", "level", "type", "beneficiary_num", "collab_rank", "signing_date", "doc"],
        "numeric": ["duration", "beneficiary_num", "collab_rank"],
        "dates": ["starting_date", "signing_date"],
        "lookups": {"level": "collaborationsLevels", "collab_outcome": "collaborationsOutcomes",
                    "type": "collaborationsTypes"},
        "doc_field": "doc",
        "folder": "collaborations",
        "title_field": "collaborating_inst",
        "date_field": "starting_date",
    },
    "research-contributions/visits": {
        "collection": "academic_visits",
        "label": "Visit",
        "body_key": "visit",
        "id_key": "visitId",
        "list_key": "visits",
        "required": ["Institute_visited", "duration", "role", "date"],
        "required_message": "Institute visited, duration, role, and date are required",
        "fields": ["Sponsored_by", "remarks", "doc"],
        "numeric": ["duration"],
        "dates": ["date"],
        "lookups": {"role": "academicVisitRoles"},
        "doc_field": "doc",
        "folder": "academic-visits",
        "title_field": "Institute_visited",
        "date_field": "date",
    },
    "research-contributions/financial-support": {
        "collection": "financial_support",
        "label": "Financial support",
        "body_key": "financialSupport",
        "id_key": "financialSupportId",
        "list_key": "financialSupports",
        "required": ["name", "type", "support", "grant_received", "date"],
        "required_message": "Name, Type, Supporting Agency, Grant Received, and Date are required",
        "fields": ["details", "purpose", "doc"],
        "numeric": ["grant_received"],
        "dates": ["date"],
        "lookups": {"type": "financialSupportTypes"},
        "doc_field": "doc",
        "folder": "financial-support",
        "title_field": "name",
        "date_field": "date",
    },
    "research-contributions/jrf-srf": {
        "collection": "jrf_srf",
        "label": "JRF/SRF",
        "body_key": "jrfSrf",
        "id_key": "jrfSrfId",
        "list_key": "jrfSrfs",
        "required": ["name", "type", "title", "duration"],
        "required_message": "Name, Type, Title, and Duration are required",
        "fields": ["monthly_allowance", "doc"],
        "numeric": ["duration", "monthly_allowance"],
        "lookups": {"type": "jrfSrfTypes"},
        "doc_field": "doc",
        "folder": "jrf-srf",
        "title_field": "title",
        "date_field": None,
    },
    "research-contributions/phd-guidance": {
        "collection": "phd_guidance",
        "label": "phdStudent",
        "body_key": "phdStudent",
        "id_key": "phdStudentId",
        "list_key": "phdStudents",
        "required": ["regno", "name", "start_date", "topic", "status"],
        "required_message": "Registration Number, Name, Start Date, Topic, and Status are required",
        "fields": ["year_of_completion", "doc"],
        "numeric": ["year_of_completion"],
        "dates": ["start_date"],
        "lookups": {"status": "phdGuidanceStatuses"},
        "doc_field": "doc",
        "folder": "phd-guidance",
        "title_field": "topic",
        "date_field": "start_date",
    },
    "research-contributions/copyrights": {
        "collection": "copyrights",
        "label": "Copyright",
        "body_key": "copyright",
        "id_key": "copyrightId",
        "list_key": "copyrights",
        "required": ["Title", "RefNo"],
        "required_message": "Title and Reference Number are required",
        "fields": ["PublicationDate", "Link", "doc"],
        "dates": ["PublicationDate"],
        "doc_field": "doc",
        "folder": "copyrights",
        "title_field": "Title",
        "date_field": "PublicationDate",
    },
    "talks-events/teacher-talks": {
        "collection": "teacher_talks",
        "label": "Teacher talk",
        "body_key": "teacherTalk",
        "id_key": "teacherTalkId",
        "list_key": "teacherTalks",
        "required": ["name", "programme", "place", "date", "title", "participated_as"],
        "required_message": "Name, Programme, Place, Date, Title, and Participated As are required",
        "fields": ["Image"],
        "dates": ["date"],
        "lookups": {"programme": "talksProgrammeTypes", "participated_as": "talksParticipantTypes"},
        "doc_field": "Image",
        "folder": "teacher-talks",
        "title_field": "title",
        "date_field": "date",
    },
    "talks-events/academic-contri": {
        "collection": "academic_contributions",
        "label": "Academic contribution",
        "body_key": "academicContri",
        "id_key": "academicContriId",
        "list_key": "academicContributions",
        "required": ["name", "programme", "date", "participated_as"],
        "required_message": "Name, Programme, Date, and Participated As are required",
        "fields": ["place", "year_name", "supporting_doc"],
        "dates": ["date"],
        "lookups": {"programme": "academicProgrammes", "participated_as": "participantTypes"},
        "doc_field": "supporting_doc",
        "folder": "academic-contribution",
        "title_field": "name",
        "date_field": "date",
    },
    "talks-events/acad-bodies-parti": {
        "collection": "acad_bodies_participation",
        "label": "Academic body participation",
        "body_key": "partiAcads",
        "id_key": "partiAcadsId",
        "list_key": "partiAcads",
        "required": ["name", "acad_body", "place", "participated_as", "submit_date"],
        "required_message": "Name, Academic Body, Place, Participated As, and Submit Date are required",
        "fields": ["year_name", "supporting_doc"],
        "dates": ["submit_date"],
        "doc_field": "supporting_doc",
        "folder": "academic-bodies",
        "title_field": "acad_body",
        "date_field": "submit_date",
    },
    "talks-events/parti-university-committes": {
        "collection": "university_committees",
        "label": "Committee participation",
        "body_key": "partiCommi",
        "id_key": "partiCommiId",
        "list_key": "partiCommis",
        "required": ["name", "committee_name", "level", "participated_as", "submit_date"],
        "required_message": "Name, Committee Name, Level, Participated As, and Submit Date are required",
        "fields": ["BodyName", "year_name", "supporting_doc"],
        "dates": ["submit_date"],
        "lookups": {"level": "committeeLevels"},
        "doc_field": "supporting_doc",
        "folder": "university-committees",
        "title_field": "committee_name",
        "date_field": "submit_date",
    },
    "talks-events/refresher-details": {
        "collection": "refresher_details",
        "label": "Refresher detail",
        "body_key": "refresherDetail",
        "id_key": "refresherDetailId",
        "list_key": "refresherDetails",
        "required": ["name", "refresher_type", "startdate"],
        "required_message": "Name, Refresher Type, and Start Date are required",
        "fields": ["enddate", "university", "institute", "department", "centre", "supporting_doc"],
        "dates": ["startdate", "enddate"],
        "lookups": {"refresher_type": "refresherTypes"},
        "doc_field": "supporting_doc",
        "folder": "refresher-details",
        "title_field": "name",
        "date_field": "startdate",
        "year_filter": True,
    },
    "awards-recognition/awards-fellow": {
        "collection": "awards_fellows",
        "label": "Award",
        "body_key": "awardsFellow",
        "id_key": "awardsFellowId",
        "list_key": "awardsFellows",
        "required": ["name", "organization", "date_of_award", "level"],
        "required_message": "Name, Organization, Date of Award, and Level are required",
        "fields": ["details", "address", "Image"],
        "dates": ["date_of_award"],
        "lookups": {"level": "awardFellowLevels"},
        "doc_field": "Image",
        "folder": "awards-fellow",
        "title_field": "name",
        "date_field": "date_of_award",
    },
    "awards-recognition/extensions": {
        "collection": "extension_activities",
        "label": "Extension activity",
        "body_key": "extensionAct",
        "id_key": "extensionActId",
        "list_key": "extensionActs",
        "required": ["names", "place", "date", "name_of_activity", "sponsered", "level"],
        "required_message": "Names, Place, Date, Name of Activity, Sponsored, and Level are required",
        "fields": ["Image"],
        "dates": ["date"],
        "lookups": {"sponsered": "sponserNames", "level": "awardFellowLevels"},
        "doc_field": "Image",
        "folder": "extension-activities",
        "title_field": "name_of_activity",
        "date_field": "date",
    },
    "awards-recognition/performance-teacher": {
        "collection": "teacher_performances",
        "label": "Performance",
        "body_key": "perfTeacher",
        "id_key": "perfTeacherId",
        "list_key": "perfTeachers",
        "required": ["name", "place", "date", "perf_nature"],
        "required_message": "Name, Place, Date, and Nature of Performance are required",
        "fields": ["Image"],
        "dates": ["date"],
        "doc_field": "Image",
        "folder": "performance-teacher",
        "title_field": "name",
        "date_field": "date",
    },
    "academic-recommendations/books": {
        "collection": "recommended_books",
        "label": "Book",
        "body_key": "book",
        "id_key": "bookId",
        "list_key": "books",
        "required": ["title"],
        "required_message": "Title is required",
        "fields": ["authors", "isbn", "book_category", "publisher_name", "publishing_level", "book_type",
                   "author_type", "edition", "volume", "ebook", "digital_media", "approx_price", "currency",
                   "publication_date", "proposed_ay"],
        "numeric": ["approx_price"],
        "dates": ["publication_date"],
        "lookups": {"publishing_level": "resPubLevels", "book_type": "bookTypes", "author_type": "journalAuthorTypes"},
        "title_field": "title",
        "date_field": "publication_date",
    },
    "academic-recommendations/journal-articles": {
        "collection": "recommended_journals",
        "label": "Journal",
        "body_key": "journal",
        "id_key": "journalId",
        "list_key": "journals",
        "required": ["title"],
        "required_message": "Title is required",
        "fields": ["issn", "eISSN", "doi", "volume_num", "publisherName", "noofIssuePerYr", "price", "currency",
                   "type", "level", "peer_reviewed", "h_index", "impact_factor", "in_scopus", "in_ugc",
                   "in_clarivate", "in_oldUGCList"],
        "numeric": ["noofIssuePerYr", "price", "h_index", "impact_factor"],
        "boolean": ["peer_reviewed", "in_scopus", "in_ugc", "in_clarivate", "in_oldUGCList"],
        "lookups": {"type": "journalEditedTypes", "level": "resPubLevels"},
        "title_field": "title",
        "date_field": None,
    },
    "academic-recommendations/magazines": {
        "collection": "recommended_magazines",
        "label": "Magazine",
        "body_key": "magazine",
        "id_key": "magazineId",
        "list_key": "magazines",
        "required": ["title"],
        "required_message": "Title is required",
        "fields": ["mode", "category", "is_additional_attachment", "additional_attachment", "publishing_agency",
                   "volume", "no_of_issue_per_yr", "price", "currency", "publication_date"],
        "numeric": ["no_of_issue_per_yr", "price"],
        "boolean": ["is_additional_attachment"],
        "dates": ["publication_date"],
        "title_field": "title",
        "date_field": "publication_date",
    },
    "academic-recommendations/tech-reports": {
        "collection": "recommended_tech_reports",
        "label": "Tech report",
        "body_key": "techReport",
        "id_key": "techReportId",
        "list_key": "techReports",
        "required": ["title"],
        "required_message": "Title is required",
        "fields": ["subject", "publisher_name", "publication_date", "no_of_issue_per_yr", "price", "currency"],
        "numeric": ["no_of_issue_per_yr", "price"],
        "dates": ["publication_date"],
        "title_field": "title",
        "date_field": "publication_date",
    },
}

# --- Teacher profile sub-resources ---
PROFILE_RECORDS = {
    "experience": {
        "collection": "teacher_experience",
        "label": "Experience",
        "body_key": "experience",
        "id_field": "Id",
        "required": ["Employeer", "Start_Date", "Nature", "UG_PG"],
        "required_message": "Employeer, Start_Date, Nature, and UG_PG are required",
        "fields": ["End_Date", "desig", "currente", "upload"],
        "boolean": ["currente"],
        "dates": ["Start_Date", "End_Date"],
        "doc_field": "upload",
    },
    "graduation": {
        "collection": "teacher_graduation",
        "label": "Education",
        "body_key": "education",
        "id_field": "gid",
        "required": ["degree_type", "university_name", "year_of_passing"],
        "required_message": "degree_type, university_name, and year_of_passing are required",
        "fields": ["subject", "state", "QS_Ranking", "Image"],
        "numeric": ["year_of_passing"],
        "lookups": {"degree_type": "degreeTypes"},
        "doc_field": "Image",
    },
    "phd-research": {
        "collection": "teacher_postdoc",
        "label": "Research",
        "body_key": "research",
        "id_field": "Id",
        "required": ["Institute", "Start_Date", "End_Date"],
        "required_message": "Institute, Start_Date, and End_Date are required",
        "fields": ["SponsoredBy", "QS_THE", "doc"],
        "dates": ["Start_Date", "End_Date"],
        "doc_field": "doc",
    },
}

TEACHER_INFO_FIELDS = [
    "fname", "mname", "lname", "email_id", "phone_no", "DOB", "designation", "perma_or_tenure",
    "PAN_No", "H_INDEX", "i10_INDEX", "CITIATIONS", "ORCHID_ID", "RESEARCHER_ID", "Google_Scholar_Link",
    "Scopus_Link", "NET", "NET_year", "SET", "SET_year", "PHDGuide", "Guide_year", "ICT_Details",
]

# --- Department record kinds ---
# Payloads are flat; the department id travels inside the record.
DEPARTMENT_RECORDS = {
    "events/dept-events": {
        "collection": "dept_events",
        "label": "Department Event",
        "dept_key": "deptid",
        "id_key": "eid",
        "list_key": "events",
        "required": ["ename", "date"],
        "required_messages": {"ename": "Event name is required", "date": "Event date is required"},
        "fields": ["description", "place", "Image", "Type_Prog", "Level_Prog", "Spo_Name", "Spo_Level",
                   "No_Participant", "no_of_days", "speaker_name"],
        "numeric": ["No_Participant", "no_of_days"],
        "dates": ["date"],
        "doc_field": "Image",
        "folder": "dept-events",
        "title_field": "ename",
        "date_field": "date",
    },
    "events/student-academic-activities": {
        "collection": "student_academic_activities",
        "label": "Student Academic Activity",
        "dept_key": "deptid",
        "id_key": "id",
        "list_key": "activities",
        "required": ["activity", "date"],
        "required_messages": {"activity": "Activity is required", "date": "Activity date is required"},
        "fields": ["fid", "place", "no_of_days", "speaker_name", "participatants_num", "Image"],
        "numeric": ["fid", "no_of_days", "participatants_num"],
        "dates": ["date"],
        "doc_field": "Image",
        "folder": "student-academic-activities",
        "title_field": "activity",
        "date_field": "date",
    },
    "events/student-body-events": {
        "collection": "student_body_events",
        "label": "Student Body Event",
        "dept_key": "deptid",
        "id_key": "id",
        "list_key": "events",
        "required": ["title", "date"],
        "required_messages": {"title": "Title is required", "date": "Event date is required"},
        "fields": ["fid", "level", "place", "days", "speaker_name", "participants_num", "Image"],
        "numeric": ["fid", "days", "participants_num"],
        "dates": ["date"],
        "lookups": {"level": "eventStudentBodyLevels"},
        "doc_field": "Image",
        "folder": "student-body-events",
        "title_field": "title",
        "date_field": "date",
    },
    "profile/funding": {
        "collection": "dept_funding",
        "label": "Funding",
        "dept_key": "deptId",
        "id_key": "id",
        "list_key": "funding",
        "required": ["fundingAgency", "dateofRecog", "fundsSancttioned"],
        "required_messages": {"fundingAgency": "Funding agency is required",
                              "dateofRecog": "Date of recognition is required",
                              "fundsSancttioned": "Funds sanctioned must be a valid number"},
        "fields": ["details"],
        "numeric": ["fundsSancttioned"],
        "dates": ["dateofRecog"],
        "title_field": "fundingAgency",
        "date_field": "dateofRecog",
    },
    "placements": {
        "collection": "dept_placements",
        "label": "Placement",
        "dept_key": "deptid",
        "id_key": "id",
        "list_key": "placements",
        "required": ["company_name", "student_count", "date"],
        "required_messages": {"company_name": "Company name is required",
                              "student_count": "Student count must be a valid number",
                              "date": "Placement date is required"},
        "fields": ["programme", "package_lpa", "academic_year", "Image"],
        "numeric": ["student_count", "package_lpa"],
        "dates": ["date"],
        "doc_field": "Image",
        "folder": "placements",
        "title_field": "company_name",
        "date_field": "date",
    },
    "scholarships": {
        "collection": "dept_scholarships",
        "label": "Scholarship",
        "dept_key": "deptid",
        "id_key": "id",
        "list_key": "scholarships",
        "required": ["scheme_name", "beneficiaries", "amount"],
        "required_messages": {"scheme_name": "Scheme name is required",
                              "beneficiaries": "Beneficiaries must be a valid number",
                              "amount": "Amount must be a valid number"},
        "fields": ["sponsor", "academic_year", "date", "Image"],
        "numeric": ["beneficiaries", "amount"],
        "dates": ["date"],
        "doc_field": "Image",
        "folder": "scholarships",
        "title_field": "scheme_name",
        "date_field": "date",
    },
}

DEPARTMENT_PROFILE_FIELDS = ["submit_date", "intro", "exam_reforms", "innovative_processes", "dept_lib", "dept_lab"]

TRUE_WORDS = {"true", "yes", "y", "1", "on"}
FALSE_WORDS = {"false", "no", "n", "0", "off"}


def is_blank(value):
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


MAX_STORED_INT = 2 ** 63 - 1


def check_int_range(value):
    if abs(value) > MAX_STORED_INT:
        raise ValueError("integer too large to store")
    return value


def to_number(value):
    """Parse an int or float from form input. Raises ValueError on junk."""
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, int):
        return check_int_range(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("number is not finite")
        return value
    text = str(value).strip().replace(",", "")
    if re.fullmatch(r"-?\d+", text):
        return check_int_range(int(text))
    result = float(text)
    if not math.isfinite(result):
        raise ValueError(f"{text} is not a finite number")
    return result


def to_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUE_WORDS


NUMERIC_DATE = re.compile(r"(\d{1,2})([/.\-])(\d{1,2})\2(\d{4})")


def to_iso_date(value):
    """Normalise a date-ish value to YYYY-MM-DD. Raises ValueError when unparseable.

    Numeric dates read day first (05/06/2024 is 5 June), then month first
    when day first is impossible.
    """
    text = str(value).strip()
    numeric = NUMERIC_DATE.fullmatch(text)
    if numeric:
        first, second, year = int(numeric.group(1)), int(numeric.group(3)), int(numeric.group(4))
        for day, month in ((first, second), (second, first)):
            try:
                return date(year, month, day).isoformat()
            except ValueError:
                continue
        raise ValueError(f"invalid date {text}")
    try:
        parsed = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(str(e))
    if pd.isna(parsed):
        raise ValueError("empty date")
    return parsed.date().isoformat()


def validate_record(spec, data, lookup_exists=None, required_messages=None):
    """Validate and clean a record payload against a kind spec.

    `lookup_exists(category, value)` reports whether a lookup id exists.
    Returns: (is_valid, error_message, validated_data)
    """
    if not isinstance(data, dict):
        return False, f"{spec['label']} data is required", None

    numeric = set(spec.get("numeric", []))
    booleans = set(spec.get("boolean", []))
    dates = set(spec.get("dates", []))
    lookups = spec.get("lookups", {})

    missing = [f for f in spec["required"] if is_blank(data.get(f))]
    if missing:
        if required_messages:
            return False, required_messages[missing[0]], None
        return False, spec["required_message"], None

    validated = {}
    for field in spec["required"] + spec.get("fields", []):
        if field not in data:
            continue
        value = data[field]
        if is_blank(value):
            validated[field] = None
            continue

        if field in numeric:
            try:
                value = to_number(value)
            except (ValueError, TypeError):
                if required_messages and field in required_messages:
                    return False, required_messages[field], None
                return False, f"{field} must be a number", None
        elif field in booleans:
            value = to_bool(value)
        elif field in dates:
            try:
                value = to_iso_date(value)
            except ValueError:
                return False, f"Invalid date for {field}. Expected YYYY-MM-DD", None
        elif isinstance(value, str):
            value = value.strip()

        if field in lookups:
            try:
                value = int(value)
            except (ValueError, TypeError):
                return False, f"Invalid reference: {field}", None
            if lookup_exists is not None and not lookup_exists(lookups[field], value):
                return False, f"Invalid reference: {field}", None

        validated[field] = value

    return True, None, validated


def record_year(record, date_field):
    """Calendar year of a record's main date, or None."""
    if not date_field:
        return None
    value = record.get(date_field)
    if not value:
        return None
    match = re.match(r"^(\d{4})", str(value))
    return int(match.group(1)) if match else None
