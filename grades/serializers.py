from rest_framework import serializers


class StudentSummarySerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    full_name = serializers.CharField()
    enrollment_number = serializers.CharField()


class SubjectSummarySerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    subject_name = serializers.CharField()
    subject_code = serializers.CharField()


class GradeRecordSerializer(serializers.Serializer):
    """Grade joined with its student and subject; summaries are null when the reference is gone"""
    id = serializers.CharField(read_only=True)
    student_id = serializers.CharField()
    subject_id = serializers.CharField()
    grade = serializers.FloatField(min_value=0, max_value=10)
    semester = serializers.CharField(max_length=20)
    student = StudentSummarySerializer(allow_null=True, read_only=True)
    subject = SubjectSummarySerializer(allow_null=True, read_only=True)
